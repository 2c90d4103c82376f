"""
Custom tools exposed to the agent runtime through the ``chatooly-tools``
MCP server: rule lookup and tool validation.
"""

from tools._common import ToolResult  # noqa: F401
from tools.rules import RULE_FILES, read_rule  # noqa: F401
from tools.validation import (  # noqa: F401
    Check,
    format_validation_report,
    validate_tool,
    validate_tool_files,
)
from tools.mcp_server import create_chatooly_server  # noqa: F401
