"""Passthrough copy for Quire.

Copies static files from the project into the output directory unchanged.
Sources are relative to the project root, destinations relative to the
output directory, e.g. ``src/_assets/images -> assets/images``.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from pathlib import Path


class PassthroughCopy:
    """Copies configured files and directories into the output directory.

    Attributes:
        project_root: Root directory of the project.
        output_dir: Directory the site is built into.
        mapping: Source path (project-relative) to destination (output-relative).
    """

    def __init__(self, project_root: Path, output_dir: Path, mapping: Mapping[str, str]):
        self.project_root = project_root
        self.output_dir = output_dir
        self.mapping = dict(mapping)

    def run(self) -> list[Path]:
        """Copy every configured source.

        Missing sources are reported and skipped.

        Returns:
            Destinations that were written.
        """
        copied: list[Path] = []
        for source_rel, dest_rel in self.mapping.items():
            source = self.project_root / source_rel
            dest = self.output_dir / str(dest_rel).strip("/")
            if source.is_dir():
                shutil.copytree(source, dest, dirs_exist_ok=True)
            elif source.is_file():
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(source, dest)
            else:
                print(f"Passthrough source not found; skipping {source_rel}")
                continue
            copied.append(dest)
        return copied
