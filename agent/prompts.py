"""
System prompt for the tool-builder agent.
The prompt is appended to the runtime's ``claude_code`` preset; a project may
override it with its own markdown file.
"""

import logging
import os
from typing import Optional

from config import AgentConfig, agent_config

logger = logging.getLogger(__name__)


# ============================================================
# Condensed fallback prompt
# ============================================================
# Used when the project does not ship server/system-prompt.md.
# Detailed instructions live in the rule files and are fetched on
# demand through the read_chatooly_rule tool.
# ============================================================

_MOD_IDENTITY = """# Chatooly Tool Builder Agent

You build interactive visual tools for the Chatooly platform."""

_MOD_CRITICAL_RULES = """## CRITICAL RULES (Never Break These)
1. Canvas MUST have id="chatooly-canvas"
2. NEVER modify CDN scripts or create export buttons
3. ALL visual content inside #chatooly-canvas
4. Use chatooly-* CSS classes (auto-styled by CDN)
5. Implement window.renderHighResolution(targetCanvas, scale) for exports
6. Connect background controls to Chatooly.backgroundManager"""

_MOD_FILES = """## File Responsibilities
- js/main.js: Canvas rendering, tool logic, animations, exports
- js/ui.js: UI interactions, control event listeners
- js/chatooly-config.js: Tool metadata only
- index.html: Add control sections using chatooly-section-card pattern"""

_MOD_RULES = """## On-Demand Rules
Use the read_chatooly_rule tool to fetch detailed instructions when needed."""

_MOD_WORKFLOW = """## Workflow
1. Ask clarifying questions about the tool
2. Plan the implementation
3. Fetch relevant rule files for details
4. Implement in small, testable steps
5. Validate using validate_chatooly_tool after major changes"""

FALLBACK_SYSTEM_PROMPT = "\n\n".join([
    _MOD_IDENTITY,
    _MOD_CRITICAL_RULES,
    _MOD_FILES,
    _MOD_RULES,
    _MOD_WORKFLOW,
])


def load_system_prompt(project_root: str, config: Optional[AgentConfig] = None) -> str:
    """Read the project's prompt file, falling back to the built-in prompt."""
    config = config or agent_config
    path = os.path.join(project_root, config.system_prompt_path)
    if os.path.isfile(path):
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            logger.warning("Could not read system prompt %s: %s", path, e)
    return FALLBACK_SYSTEM_PROMPT
