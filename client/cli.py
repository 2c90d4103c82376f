"""
Terminal front end for the chat client.

Run:  python -m client "Create a gradient generator" [--image sketch.png]
      python -m client --reset
"""

import argparse
import asyncio
import base64
import logging
import mimetypes
import os
from typing import Dict, List

from rich.console import Console
from rich.text import Text

from client.connection import ChatClient, ConnectionStatus, EntryStyle, LogEntry
from config import client_config

TERMINAL_TYPES = ("result", "error", "cancelled")
LOST_MESSAGE = "Connection lost before the agent finished"

STYLES = {
    "user": "bold cyan",
    "assistant": "",
    "tool-use": "dim",
    "system": "green",
    "error": "bold red",
}


def render_entry(entry: LogEntry) -> Text:
    prefix = {"user": "> ", "tool-use": "  ", "error": "! "}.get(entry.style, "")
    return Text(prefix + entry.text, style=STYLES.get(entry.style, ""))


def encode_image(path: str) -> Dict[str, str]:
    media_type = mimetypes.guess_type(path)[0] or "application/octet-stream"
    with open(path, "rb") as f:
        data = base64.b64encode(f.read()).decode("ascii")
    return {"type": "base64", "media_type": media_type, "data": data}


async def run(url: str, prompt: str, images: List[Dict[str, str]], reset: bool) -> int:
    console = Console()
    client = ChatClient(url)
    client.log.subscribe(lambda entry: console.print(render_entry(entry)))

    finished = asyncio.Event()
    outcome = {}
    waiting = False

    def on_message(data):
        msg_type = data.get("type")
        if msg_type in TERMINAL_TYPES or (reset and msg_type == "reset-complete"):
            outcome.update(data)
            finished.set()

    def on_status(status):
        # A reconnect gets a fresh gateway session, so the turn cannot finish
        if waiting and status == ConnectionStatus.DISCONNECTED and not finished.is_set():
            client.log.add(EntryStyle.ERROR, LOST_MESSAGE)
            outcome.update({"type": "error", "message": LOST_MESSAGE})
            finished.set()

    client.add_listener(on_message)
    client.add_status_listener(on_status)

    await client.connect()
    while not client.connected:
        if client.gave_up:
            await client.close()
            return 1
        await asyncio.sleep(0.1)

    try:
        if reset:
            waiting = await client.reset()
        else:
            waiting = await client.send_chat(prompt, images)
        if not waiting:
            console.print(Text("Nothing to send", style="bold red"))
            return 1
        with console.status("Agent is working..."):
            await finished.wait()
    except asyncio.CancelledError:
        await client.cancel()
        raise
    finally:
        waiting = False
        await client.close()
    ok = outcome.get("type") == "reset-complete" or outcome.get("subtype") == "success"
    return 0 if ok else 1


def main():
    parser = argparse.ArgumentParser(description="Chatooly AI - terminal chat client")
    parser.add_argument("prompt", nargs="?", default="", help="What to build or change")
    parser.add_argument("--url", default=client_config.server_url, help=f"Gateway URL (default: {client_config.server_url})")
    parser.add_argument("--image", action="append", default=[], help="Attach an image (repeatable)")
    parser.add_argument("--reset", action="store_true", help="Restore the tool files to the baseline")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log connection details")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    for path in args.image:
        if not os.path.isfile(path):
            parser.error(f"image not found: {path}")
    images = [encode_image(p) for p in args.image]

    try:
        code = asyncio.run(run(args.url, args.prompt, images, args.reset))
    except KeyboardInterrupt:
        code = 130
    raise SystemExit(code)
