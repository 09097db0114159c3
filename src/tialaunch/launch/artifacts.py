"""Run-scoped output locations and the coverage artifact lifecycle."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from tialaunch.core.errors import SpawnError
from tialaunch.launch.models import RunContext

if TYPE_CHECKING:
    from tialaunch.config.models import ReportConfig

log = structlog.get_logger()


class ExecutionArtifactManager:
    """Owns the coverage-output file of one run.

    Paths are derived only from the run context and report configuration,
    so the same inputs always resolve to the same locations.
    """

    def __init__(self, report: ReportConfig) -> None:
        self._report = report

    def resolve(self, context: RunContext) -> Path:
        """Path the agent writes execution data to."""
        return context.build_dir / self._report.artifact_subdir / f"{context.task_name}.exec"

    def reports_dir(self, context: RunContext) -> Path:
        return context.build_dir / self._report.reports_subdir / context.task_name

    def dump_dir(self, context: RunContext) -> Path:
        return context.build_dir / self._report.dump_subdir / context.task_name

    def reset(self, path: Path) -> None:
        """Remove a stale artifact left by an earlier run.

        Raises:
            SpawnError: The file exists but cannot be removed.
        """
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise SpawnError.artifact_reset_failed(str(path), str(e)) from e
        log.debug("artifact.stale_removed", path=str(path))

    def prepare(self, context: RunContext) -> Path:
        """Resolve and reset the artifact, creating its parent directories."""
        path = self.resolve(context)
        self.reset(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise SpawnError.os_failure("mkdir", f"{path.parent}: {e}") from e
        return path
