"""
Tagged messages exchanged over the /ws channel.

Inbound frames are parsed into one of the request dataclasses below and
dispatched by type; outbound helpers build the plain dict payloads.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


class ProtocolError(ValueError):
    """Malformed or unknown inbound message"""
    pass


@dataclass
class ChatRequest:
    prompt: str
    images: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class CancelRequest:
    pass


@dataclass
class PingRequest:
    pass


@dataclass
class ResetRequest:
    pass


InboundMessage = Union[ChatRequest, CancelRequest, PingRequest, ResetRequest]


def parse_inbound(data: Any) -> InboundMessage:
    """Turn a decoded JSON frame into a typed request."""
    if not isinstance(data, dict):
        raise ProtocolError("Message must be a JSON object")

    msg_type = data.get("type", "")
    if msg_type == "chat":
        prompt = data.get("prompt", "")
        if not isinstance(prompt, str):
            raise ProtocolError("prompt must be a string")
        images = data.get("images")
        if images is None:
            images = data.get("attachments")
        return ChatRequest(prompt=prompt.strip(), images=images or [])
    if msg_type == "cancel":
        return CancelRequest()
    if msg_type == "ping":
        return PingRequest()
    if msg_type == "reset":
        return ResetRequest()
    raise ProtocolError(f"Unknown message type: {msg_type}")


# ============================================================
# Outbound payloads
# ============================================================

def connected_message(has_api_key: bool) -> Dict[str, Any]:
    return {
        "type": "connected",
        "message": "Connected to Chatooly AI Server",
        "hasApiKey": has_api_key,
    }


def pong_message() -> Dict[str, Any]:
    return {"type": "pong"}


def error_message(message: str) -> Dict[str, Any]:
    return {"type": "error", "message": message}


def reset_complete_message(files: List[str]) -> Dict[str, Any]:
    return {"type": "reset-complete", "files": list(files)}
