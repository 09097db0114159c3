"""Launch subsystem core models.

Value types shared by the builders and the orchestrator. Everything here is
immutable; the orchestrator owns the only mutable state (its launch state).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

# =============================================================================
# Revision Window
# =============================================================================


@dataclass(frozen=True)
class RevisionPoint:
    """One endpoint of the change window.

    Either a raw revision identifier or a branch + timestamp pair. The string
    form is what the spawned process receives.
    """

    revision: str | None = None
    branch: str | None = None
    timestamp: str | None = None

    @classmethod
    def parse(cls, text: str) -> RevisionPoint:
        """Keep the caller's text verbatim as a revision identifier."""
        return cls(revision=text)

    @classmethod
    def on_branch(cls, branch: str, timestamp: str | int) -> RevisionPoint:
        return cls(branch=branch, timestamp=str(timestamp))

    def __str__(self) -> str:
        if self.revision is not None:
            return self.revision
        return f"{self.branch}:{self.timestamp}"

    @property
    def is_empty(self) -> bool:
        if self.revision is not None:
            return not self.revision
        return not self.branch or not self.timestamp


@dataclass(frozen=True)
class RevisionWindow:
    """The (baseline, end) pair bounding the change set."""

    baseline: RevisionPoint
    end: RevisionPoint


# =============================================================================
# Server Identity
# =============================================================================


@dataclass(frozen=True)
class ServerIdentity:
    url: str
    project: str
    user: str
    access_token: str = field(repr=False)


# =============================================================================
# Selection Filter
# =============================================================================


@dataclass(frozen=True)
class TestSelectionFilter:
    """Include/exclude sets per filter dimension.

    A test must match at least one include per non-empty dimension and no
    exclude. Class patterns are globs; they are normalized before emission.
    """

    __test__ = False  # not a pytest test class

    include_tags: tuple[str, ...] = ()
    exclude_tags: tuple[str, ...] = ()
    include_engines: tuple[str, ...] = ()
    exclude_engines: tuple[str, ...] = ()
    include_classes: tuple[str, ...] = ()
    exclude_classes: tuple[str, ...] = ()


# =============================================================================
# Agent Variants
# =============================================================================


@dataclass(frozen=True)
class LocalAgent:
    """Agent attached to the spawned process by this orchestrator."""

    jar: Path | None
    port: int
    includes: tuple[str, ...] = ()
    excludes: tuple[str, ...] = ()
    dump_dir: Path | None = None

    @property
    def control_url(self) -> str:
        return f"http://localhost:{self.port}"


@dataclass(frozen=True)
class RemoteAgent:
    """Agent that is already running; nothing is attached."""

    url: str

    @property
    def control_url(self) -> str:
        return self.url


AgentConfiguration = LocalAgent | RemoteAgent


# =============================================================================
# Run Context
# =============================================================================


@dataclass(frozen=True)
class BuildUnit:
    """Compiled outputs of one build unit (module, source set)."""

    name: str
    classes_dirs: tuple[Path, ...] = ()
    resources_dir: Path | None = None
    extra_dirs: tuple[Path, ...] = ()


@dataclass(frozen=True)
class RunContext:
    """Identifies one run. Every run-scoped path derives from it."""

    task_name: str
    build_dir: Path
    working_dir: Path
    units: tuple[BuildUnit, ...] = ()


@dataclass(frozen=True)
class LaunchRequest:
    window: RevisionWindow
    context: RunContext
    selection_filter: TestSelectionFilter = field(default_factory=TestSelectionFilter)
    run_all_tests: bool = False
    timeout_sec: float | None = None


# =============================================================================
# Launch State / Result
# =============================================================================


class LaunchState(str, Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class LaunchPlan:
    """Everything needed to spawn the process, assembled during preparation."""

    command: list[str]
    arguments: list[str]
    directive: str | None
    working_dir: Path
    env: dict[str, str] = field(repr=False)
    artifact: Path
    reports_dir: Path


@dataclass(frozen=True)
class LaunchResult:
    """Outcome of a completed launch.

    A non-zero exit code means failing tests, not an orchestration failure.
    """

    exit_code: int
    artifact: Path
    artifact_present: bool
    reports_dir: Path
    duration_seconds: float = 0.0
