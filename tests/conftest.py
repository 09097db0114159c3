"""Shared fixtures for launch tests."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from tialaunch.config.models import (
    AgentSettings,
    ExecutorConfig,
    ServerConfig,
    TiaLaunchConfig,
)
from tialaunch.launch.models import (
    BuildUnit,
    LaunchRequest,
    RevisionPoint,
    RevisionWindow,
    RunContext,
)


@dataclass
class RecordingLauncher:
    """ProcessLauncher stand-in that records spawns instead of starting a JVM."""

    exit_code: int = 0
    write_artifact: Path | None = None
    raises: BaseException | None = None
    calls: list[dict[str, Any]] = field(default_factory=list)

    def run(
        self,
        command: list[str],
        *,
        cwd: Path,
        env: dict[str, str],
        timeout_sec: float | None = None,
    ) -> int:
        self.calls.append({"command": command, "cwd": cwd, "env": env, "timeout_sec": timeout_sec})
        if self.write_artifact is not None:
            self.write_artifact.write_bytes(b"exec-data")
        if self.raises is not None:
            raise self.raises
        return self.exit_code


@pytest.fixture
def launcher() -> RecordingLauncher:
    return RecordingLauncher()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    (root / "build" / "classes").mkdir(parents=True)
    (root / "lib").mkdir()
    (root / "lib" / "agent.jar").write_bytes(b"")
    return root


@pytest.fixture
def run_context(workspace: Path) -> RunContext:
    return RunContext(
        task_name="test",
        build_dir=workspace / "build",
        working_dir=workspace,
        units=(
            BuildUnit(
                name="test",
                classes_dirs=(workspace / "build" / "classes",),
                resources_dir=workspace / "build" / "resources",
            ),
        ),
    )


@pytest.fixture
def config(workspace: Path) -> TiaLaunchConfig:
    return TiaLaunchConfig(
        server=ServerConfig(url="https://ts.example", project="demo", user="u", access_token="t"),
        agent=AgentSettings(jar=workspace / "lib" / "agent.jar", port=8123),
        executor=ExecutorConfig(java=sys.executable, classpath=[workspace / "lib" / "executor.jar"]),
    )


@pytest.fixture
def launch_request(run_context: RunContext) -> LaunchRequest:
    return LaunchRequest(
        window=RevisionWindow(
            baseline=RevisionPoint.parse("rev-100"),
            end=RevisionPoint.parse("rev-120"),
        ),
        context=run_context,
    )
