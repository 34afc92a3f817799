"""
Per-request scratch directories.

Every request gets a fresh directory named by a UUID under a shared root.
The submitted source, an ``input.txt`` holding stdin, and any support files
of the toolchain are written there; compilers drop their artifacts next to
them.  The directory belongs to exactly one request and is removed once the
request has been answered.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from dataclasses import dataclass
from pathlib import Path

from .toolchains import ToolchainSpec

logger = logging.getLogger("coderunner.workspace")

INPUT_FILE_NAME = "input.txt"


@dataclass(frozen=True)
class Workspace:
    """Handle to one staged scratch directory."""

    id: str
    path: Path
    source_path: Path
    input_path: Path

    def read_input(self) -> bytes:
        return self.input_path.read_bytes()


class WorkspaceManager:
    """Create and remove workspaces under ``root``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def stage(self, source_text: str, stdin: str, spec: ToolchainSpec) -> Workspace:
        """Materialise a request's files in a new directory.

        If writing any file fails the partially created directory is
        removed before the error propagates.
        """
        workspace_id = str(uuid.uuid4())
        path = self.root / workspace_id
        # exist_ok=False: a collision must never hand out a shared directory
        path.mkdir(parents=True, exist_ok=False)
        workspace = Workspace(
            id=workspace_id,
            path=path.resolve(),
            source_path=path.resolve() / spec.source_file_name,
            input_path=path.resolve() / INPUT_FILE_NAME,
        )
        try:
            workspace.source_path.write_text(source_text, encoding="utf-8")
            workspace.input_path.write_text(stdin, encoding="utf-8")
            for name, content in spec.support_files.items():
                (workspace.path / name).write_text(content, encoding="utf-8")
        except Exception:
            self.release(workspace)
            raise
        logger.debug("Staged workspace %s for %s", workspace.id, spec.language_id)
        return workspace

    def release(self, workspace: Workspace) -> None:
        """Remove the workspace tree.  Failures are logged, never raised."""
        if not workspace.path.exists():
            return
        try:
            shutil.rmtree(workspace.path)
        except Exception as exc:
            logger.warning("Cleanup of workspace %s failed: %s", workspace.id, exc)
