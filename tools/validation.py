"""Static compliance checks for a generated Chatooly tool."""

import os
from dataclasses import dataclass
from typing import List

from tools._common import ToolResult


@dataclass
class Check:
    name: str
    passed: bool
    file: str


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8", errors="replace") as f:
        return f.read()


def validate_tool_files(project_root: str) -> List[Check]:
    """Run the markup and main-script checks. Missing main.js adds no checks."""
    checks: List[Check] = []

    html_path = os.path.join(project_root, "index.html")
    if os.path.isfile(html_path):
        html = _read(html_path)
        checks.append(Check('Canvas has id="chatooly-canvas"', 'id="chatooly-canvas"' in html, "index.html"))
        checks.append(Check("CDN script intact", "chatooly-cdn/js/core.min.js" in html, "index.html"))
        checks.append(Check("Uses chatooly-section-card pattern", "chatooly-section-card" in html, "index.html"))
        checks.append(Check(
            "Background controls present",
            "transparent-bg" in html and "bg-color" in html,
            "index.html",
        ))
    else:
        checks.append(Check("index.html exists", False, "index.html"))

    main_path = os.path.join(project_root, "js", "main.js")
    if os.path.isfile(main_path):
        js = _read(main_path)
        checks.append(Check("High-res export function defined", "renderHighResolution" in js, "js/main.js"))
        checks.append(Check("Background manager initialized", "backgroundManager" in js, "js/main.js"))
        checks.append(Check(
            "Canvas dimensions set",
            "canvas.width" in js and "canvas.height" in js,
            "js/main.js",
        ))

    return checks


def format_validation_report(checks: List[Check]) -> str:
    passed = sum(1 for c in checks if c.passed)
    total = len(checks)
    status = "ALL CHECKS PASSED" if passed == total else f"{passed}/{total} checks passed"
    lines = [
        "# Chatooly Validation Results",
        "",
        f"**Status:** {status}",
        "",
        "## Checks:",
    ]
    lines.extend(f"- [{'x' if c.passed else ' '}] {c.name} ({c.file})" for c in checks)
    return "\n".join(lines)


def validate_tool(project_root: str) -> ToolResult:
    try:
        checks = validate_tool_files(project_root)
    except OSError as e:
        return ToolResult(success=False, output="", error=f"Validation failed: {e}")
    return ToolResult(success=True, output=format_validation_report(checks))
