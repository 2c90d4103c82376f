"""
Credential detection for the agent runtime.

The runtime authenticates either with ANTHROPIC_API_KEY or, in Bedrock mode
(CLAUDE_CODE_USE_BEDROCK=1), with AWS credentials resolved through boto3.
"""

import asyncio
import logging
import os
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, NoCredentialsError

from config import aws_config, AWSConfig

logger = logging.getLogger(__name__)


class CredentialsError(Exception):
    """Raised when Bedrock credentials cannot be resolved"""
    pass


def _boto_session(cfg: AWSConfig) -> boto3.Session:
    session_kwargs = {"region_name": cfg.region}

    if cfg.has_profile():
        session_kwargs["profile_name"] = cfg.profile_name
    elif cfg.has_explicit_credentials():
        session_kwargs["aws_access_key_id"] = cfg.access_key_id
        session_kwargs["aws_secret_access_key"] = cfg.secret_access_key
        if cfg.has_session_token():
            session_kwargs["aws_session_token"] = cfg.session_token

    return boto3.Session(**session_kwargs)


def resolve_aws_env(cfg: Optional[AWSConfig] = None) -> Dict[str, str]:
    """Resolve AWS credentials into the environment variables the runtime reads."""
    cfg = cfg or aws_config
    try:
        creds = _boto_session(cfg).get_credentials()
    except (BotoCoreError, NoCredentialsError) as e:
        raise CredentialsError(f"Failed to resolve AWS credentials: {e}")
    if creds is None:
        raise CredentialsError("AWS credentials not configured.")

    frozen = creds.get_frozen_credentials()
    env = {
        "CLAUDE_CODE_USE_BEDROCK": "1",
        "AWS_REGION": cfg.region,
        "AWS_ACCESS_KEY_ID": frozen.access_key,
        "AWS_SECRET_ACCESS_KEY": frozen.secret_key,
    }
    if frozen.token:
        env["AWS_SESSION_TOKEN"] = frozen.token
    return env


def has_api_key(cfg: Optional[AWSConfig] = None) -> bool:
    """True when the runtime has something to authenticate with."""
    if os.getenv("ANTHROPIC_API_KEY"):
        return True
    cfg = cfg or aws_config
    if not cfg.use_bedrock:
        return False
    try:
        resolve_aws_env(cfg)
    except CredentialsError as e:
        logger.debug("Bedrock credentials unavailable: %s", e)
        return False
    return True


def runtime_env(cfg: Optional[AWSConfig] = None) -> Dict[str, str]:
    """Environment overrides passed to the agent runtime process."""
    cfg = cfg or aws_config
    if cfg.use_bedrock and not os.getenv("ANTHROPIC_API_KEY"):
        try:
            return resolve_aws_env(cfg)
        except CredentialsError as e:
            logger.warning("Bedrock mode enabled but %s", e)
    return {}


class CredentialState:
    """Credentials resolved once in a worker thread; request handlers only read the cached values."""

    def __init__(self, cfg: Optional[AWSConfig] = None):
        self.cfg = cfg or aws_config
        self.has_key = False
        self.env: Dict[str, str] = {}
        self.resolved = False

    def resolve(self) -> "CredentialState":
        self.has_key = has_api_key(self.cfg)
        self.env = runtime_env(self.cfg) if self.has_key else {}
        self.resolved = True
        logger.info("Credentials resolved (available=%s)", self.has_key)
        return self

    async def refresh(self) -> "CredentialState":
        return await asyncio.to_thread(self.resolve)
