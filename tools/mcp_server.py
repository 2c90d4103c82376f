"""In-process MCP server exposing the Chatooly tools to the agent runtime."""

from typing import Any, Dict, Optional

from claude_agent_sdk import create_sdk_mcp_server, tool

from config import AgentConfig, CUSTOM_TOOL_SERVER, agent_config
from tools.rules import RULE_FILES, read_rule
from tools.validation import validate_tool

READ_RULE_SCHEMA = {
    "type": "object",
    "properties": {
        "ruleName": {
            "type": "string",
            "enum": list(RULE_FILES),
            "description": "The name of the rule file to read",
        },
    },
    "required": ["ruleName"],
}


def create_chatooly_server(project_root: str, config: Optional[AgentConfig] = None):
    config = config or agent_config

    @tool(
        "read_chatooly_rule",
        "Fetch detailed Chatooly rule documentation. Use this to get specific implementation "
        "details for canvas resize, exports, library setup, background system, or design system.",
        READ_RULE_SCHEMA,
    )
    async def read_chatooly_rule(args: Dict[str, Any]) -> Dict[str, Any]:
        return read_rule(project_root, str(args.get("ruleName", "")), config).to_mcp()

    @tool(
        "validate_chatooly_tool",
        "Validate the current tool implementation against Chatooly requirements. "
        "Run this after making significant changes to verify compliance.",
        {},
    )
    async def validate_chatooly_tool(args: Dict[str, Any]) -> Dict[str, Any]:
        return validate_tool(project_root).to_mcp()

    return create_sdk_mcp_server(
        name=CUSTOM_TOOL_SERVER,
        version="1.0.0",
        tools=[read_chatooly_rule, validate_chatooly_tool],
    )
