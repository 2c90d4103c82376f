"""On-demand rule documents for the tool-builder agent."""

import logging
import os
from typing import Optional

from config import AgentConfig, agent_config
from tools._common import ToolResult

logger = logging.getLogger(__name__)

# Rule name -> markdown file under the rules directory
RULE_FILES = {
    "core-rules": "01-core-rules.md",
    "workflow-setup": "02-workflow-setup.md",
    "canvas-resize": "03-canvas-resize.md",
    "high-res-export": "04-high-res-export.md",
    "library-selection": "05-library-selection.md",
    "design-system": "06-design-system.md",
    "publishing": "07-publishing-troubleshooting.md",
    "background-system": "08-background-system.md",
}


def read_rule(project_root: str, rule_name: str, config: Optional[AgentConfig] = None) -> ToolResult:
    config = config or agent_config
    file_name = RULE_FILES.get(rule_name)
    if file_name is None:
        return ToolResult(
            success=False,
            output="",
            error=f"Unknown rule: {rule_name}. Available: {', '.join(RULE_FILES)}",
        )

    path = os.path.join(project_root, config.rules_dir, file_name)
    if not os.path.isfile(path):
        return ToolResult(success=False, output="", error=f"Rule file not found: {file_name}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            return ToolResult(success=True, output=f.read())
    except OSError as e:
        logger.warning("Failed to read rule %s: %s", path, e)
        return ToolResult(success=False, output="", error=f"Failed to read {file_name}: {e}")
