"""
Known-good baseline of the managed tool files, used by the ``reset`` command.

The baseline comes from a template directory when one exists, otherwise from
a snapshot of the project taken at server start. Restoring rewrites every
baseline file and deletes managed files the baseline does not know about.
"""

import logging
import os
from typing import Dict, List, Optional

from file_watcher import PathFilter

logger = logging.getLogger(__name__)


class BaselineStore:
    """In-memory copy of the managed tool files."""

    def __init__(self, project_root: str, path_filter: PathFilter, template_dir: Optional[str] = None):
        self.project_root = os.path.abspath(project_root)
        self.filter = path_filter
        self.template_dir = os.path.abspath(template_dir) if template_dir else None
        if self.template_dir:
            rel = os.path.relpath(self.template_dir, self.project_root)
            # A template inside the project is never a managed file
            if rel != "." and not rel.startswith(".."):
                self.filter.exclude(rel)
        self._files: Dict[str, bytes] = {}
        self.source: str = "empty"

    @property
    def files(self) -> List[str]:
        return sorted(self._files)

    def capture(self) -> int:
        """Load the baseline. Returns the number of files captured."""
        if self.template_dir and os.path.isdir(self.template_dir):
            self._files = self._read_tree(self.template_dir)
            self.source = self.template_dir
        else:
            self._files = self._read_tree(self.project_root)
            self.source = "snapshot"
        logger.info("Baseline captured: %d files from %s", len(self._files), self.source)
        return len(self._files)

    def _read_tree(self, root: str) -> Dict[str, bytes]:
        files: Dict[str, bytes] = {}
        for rel in self.filter.walk(root):
            try:
                with open(os.path.join(root, rel), "rb") as f:
                    files[rel] = f.read()
            except OSError as e:
                logger.warning("Baseline: could not read %s: %s", rel, e)
        return files

    def restore(self) -> List[str]:
        """Rewrite the managed files to the baseline. Returns touched relative paths."""
        touched: List[str] = []
        for rel, content in self._files.items():
            abs_path = os.path.join(self.project_root, rel)
            try:
                with open(abs_path, "rb") as f:
                    if f.read() == content:
                        continue
            except OSError:
                pass
            os.makedirs(os.path.dirname(abs_path), exist_ok=True)
            tmp_path = abs_path + ".tmp"
            try:
                with open(tmp_path, "wb") as f:
                    f.write(content)
                os.replace(tmp_path, abs_path)
            except Exception:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)
                raise
            touched.append(rel)

        for rel in self.filter.walk(self.project_root):
            if rel in self._files:
                continue
            try:
                os.remove(os.path.join(self.project_root, rel))
                touched.append(rel)
            except OSError as e:
                logger.warning("Baseline: could not remove %s: %s", rel, e)

        touched.sort()
        logger.info("Baseline restored (%d files touched)", len(touched))
        return touched
