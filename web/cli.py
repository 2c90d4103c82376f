"""
CLI entry point for the Chatooly live session server.

Run:  python -m web [--port 3001] [--dir /path/to/tool] [--no-watch]
"""

import argparse
import logging
import os

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from config import app_config, get_credentials_info


def _banner(host: str, port: int, project_root: str, watch: bool) -> Panel:
    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="bold")
    grid.add_column()
    grid.add_row("Server", f"http://{host}:{port}")
    grid.add_row("WebSocket", f"ws://{host}:{port}/ws")
    grid.add_row("Project", project_root)
    grid.add_row("Watching", "yes" if watch else "no")
    grid.add_row("Credentials", get_credentials_info())
    return Panel(grid, title="Chatooly AI Tool Builder Server", expand=False)


def _setup_logging(level: str) -> None:
    # uvicorn's log_level only affects its own loggers
    root = logging.getLogger()
    root.setLevel(level.upper())
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
        root.addHandler(h)


def main():
    import uvicorn

    parser = argparse.ArgumentParser(description="Chatooly AI Tool Builder - live session server")
    parser.add_argument("--port", type=int, default=app_config.port, help=f"Server port (default: {app_config.port})")
    parser.add_argument("--host", default=app_config.host, help=f"Server host (default: {app_config.host})")
    parser.add_argument("--dir", default=app_config.project_root, help="Tool project directory (default: .)")
    parser.add_argument("--no-watch", action="store_true", help="Disable the file watcher")
    args = parser.parse_args()

    project_root = os.path.abspath(os.path.expanduser(args.dir))
    if not os.path.isdir(project_root):
        print(f"\n  Error: directory not found: {project_root}")
        print(f"  Hint: use the full path, e.g. --dir ~/Desktop/my-tool\n")
        raise SystemExit(1)

    watch = app_config.watch_enabled and not args.no_watch
    _setup_logging(app_config.log_level)
    Console().print(_banner(args.host, args.port, project_root, watch))

    from web import create_app
    app = create_app(project_root=project_root, watch=watch)
    uvicorn.run(app, host=args.host, port=args.port, log_level="warning")
