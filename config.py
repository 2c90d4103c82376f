"""
Configuration module for the Chatooly AI Tool Builder.
Handles environment variables, agent runtime settings, watcher patterns and
client reconnection timing.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class AWSConfig:
    """AWS-specific configuration (only used when the runtime talks to Bedrock)"""
    region: str = os.getenv("AWS_REGION", "us-east-1")
    access_key_id: str = os.getenv("AWS_ACCESS_KEY_ID", "")
    secret_access_key: str = os.getenv("AWS_SECRET_ACCESS_KEY", "")
    session_token: str = os.getenv("AWS_SESSION_TOKEN", "")
    profile_name: str = os.getenv("AWS_PROFILE", "")
    use_bedrock: bool = os.getenv("CLAUDE_CODE_USE_BEDROCK", "0") in ("1", "true")

    def has_explicit_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)

    def has_session_token(self) -> bool:
        return bool(self.session_token)

    def has_profile(self) -> bool:
        return bool(self.profile_name)


CUSTOM_TOOL_SERVER = "chatooly-tools"

DEFAULT_ALLOWED_TOOLS = [
    "Read", "Write", "Edit", "Glob", "Grep", "Bash",
    f"mcp__{CUSTOM_TOOL_SERVER}__read_chatooly_rule",
    f"mcp__{CUSTOM_TOOL_SERVER}__validate_chatooly_tool",
]


@dataclass
class AgentConfig:
    """Agent runtime configuration"""
    model: str = os.getenv("AGENT_MODEL", "claude-sonnet-4-20250514")
    max_turns: int = int(os.getenv("AGENT_MAX_TURNS", "50"))
    permission_mode: str = os.getenv("AGENT_PERMISSION_MODE", "acceptEdits")
    allowed_tools: List[str] = field(
        default_factory=lambda: _env_list("AGENT_ALLOWED_TOOLS", DEFAULT_ALLOWED_TOOLS)
    )
    # Relative to the project root
    system_prompt_path: str = os.getenv("AGENT_SYSTEM_PROMPT", os.path.join("server", "system-prompt.md"))
    rules_dir: str = os.getenv("AGENT_RULES_DIR", "claude-rules")


# Files that make up the generated tool; anything else is never watched.
# Patterns are anchored at the project root.
DEFAULT_WATCH_PATTERNS = [
    "js/*.js",
    "/index.html",
    "css/*.css",
]

DEFAULT_IGNORE_PATTERNS = [
    "**/node_modules/**",
    "server/**",
    "**/.git/**",
    "**/package*.json",
    "**/.env*",
]


@dataclass
class AppConfig:
    """Application-specific configuration"""
    title: str = "Chatooly AI Tool Builder"
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "3001"))
    project_root: str = os.getenv("PROJECT_ROOT", ".")
    # File watcher
    watch_enabled: bool = _env_bool("WATCH_ENABLED", "true")
    watch_debounce_ms: int = int(os.getenv("WATCH_DEBOUNCE_MS", "300"))
    watch_patterns: List[str] = field(
        default_factory=lambda: _env_list("WATCH_PATTERNS", DEFAULT_WATCH_PATTERNS)
    )
    ignore_patterns: List[str] = field(
        default_factory=lambda: _env_list("IGNORE_PATTERNS", DEFAULT_IGNORE_PATTERNS)
    )
    # Attachment staging; empty means a private directory under the system temp dir
    attachment_dir: str = os.getenv("ATTACHMENT_DIR", "")
    max_attachments: int = int(os.getenv("MAX_ATTACHMENTS", "5"))
    max_attachment_bytes: int = int(os.getenv("MAX_ATTACHMENT_BYTES", str(5 * 1024 * 1024)))
    max_attachment_total_bytes: int = int(os.getenv("MAX_ATTACHMENT_TOTAL_BYTES", str(20 * 1024 * 1024)))
    # Reset baseline; relative paths resolve against the project root
    baseline_dir: str = os.getenv("BASELINE_DIR", os.path.join(".chatooly", "template"))


@dataclass
class ClientConfig:
    """Browser-side (client package) timing"""
    server_url: str = os.getenv("CHATOOLY_WS_URL", "ws://127.0.0.1:3001/ws")
    reconnect_delay: float = float(os.getenv("RECONNECT_DELAY", "3.0"))
    max_reconnect_attempts: int = int(os.getenv("MAX_RECONNECT_ATTEMPTS", "5"))
    heartbeat_interval: float = float(os.getenv("HEARTBEAT_INTERVAL", "30.0"))
    auto_refresh_delay: float = float(os.getenv("AUTO_REFRESH_DELAY", "1.5"))
    ipc_channel: str = os.getenv("IPC_CHANNEL", "chatooly-ipc")


# Create global config instances
aws_config = AWSConfig()
agent_config = AgentConfig()
app_config = AppConfig()
client_config = ClientConfig()


def resolve_project_path(relative: str, project_root: Optional[str] = None) -> str:
    """Resolve a config path against the project root unless already absolute."""
    root = os.path.abspath(os.path.expanduser(project_root or app_config.project_root))
    if os.path.isabs(relative):
        return relative
    return os.path.join(root, relative)


def get_credentials_info() -> str:
    if os.getenv("ANTHROPIC_API_KEY"):
        return "Using ANTHROPIC_API_KEY"
    if aws_config.use_bedrock:
        if aws_config.has_profile():
            return f"Using Bedrock with AWS profile: {aws_config.profile_name}"
        elif aws_config.has_explicit_credentials():
            if aws_config.has_session_token():
                return "Using Bedrock with temporary credentials (with session token)"
            return "Using Bedrock with explicit credentials"
        return "Using Bedrock with the default credential chain"
    return "No credentials configured"
