"""Tests for launch orchestration.

Uses a recording launcher; no JVM is started.
"""

from __future__ import annotations

import os
import sys
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock, patch

import pytest

from tialaunch.config.models import AgentSettings, ExecutorConfig, ServerConfig, TiaLaunchConfig
from tialaunch.core.errors import (
    ConfigurationError,
    ErrorCode,
    LaunchCancelledError,
    LaunchInProgressError,
    PatternError,
    SpawnError,
)
from tialaunch.launch.models import LaunchRequest, LaunchState, TestSelectionFilter
from tialaunch.launch.orchestrator import LaunchOrchestrator, SubprocessLauncher, check_directive


def _with(config: TiaLaunchConfig, **sections: Any) -> TiaLaunchConfig:
    return config.model_copy(update=sections)


class TestPlan:
    def test_command_layout_for_local_agent(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        plan = LaunchOrchestrator(config, launcher).plan(launch_request)

        assert plan.command[0] == sys.executable
        assert plan.directive is not None
        assert plan.command[1] == plan.directive
        cp_index = plan.command.index("-cp")
        assert plan.command[cp_index + 2] == config.executor.main_class
        assert plan.command[cp_index + 3 :] == plan.arguments

    def test_working_dir_mirrors_test_task(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        plan = LaunchOrchestrator(config, launcher).plan(launch_request)

        assert plan.working_dir == launch_request.context.working_dir

    def test_jvm_args_precede_directive(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        executor = config.executor.model_copy(update={"jvm_args": ["-Xmx1g"]})
        plan = LaunchOrchestrator(_with(config, executor=executor), launcher).plan(launch_request)

        assert plan.command[1:3] == ["-Xmx1g", plan.directive]

    def test_remote_agent_has_no_directive_and_uses_remote_url(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        agent = AgentSettings(mode="remote", url="http://agent-host:9000")
        plan = LaunchOrchestrator(_with(config, agent=agent), launcher).plan(launch_request)

        assert plan.directive is None
        assert not any(arg.startswith("-javaagent:") for arg in plan.command)
        agent_url_index = plan.arguments.index("--agent-url")
        assert plan.arguments[agent_url_index + 1] == "http://agent-host:9000"

    def test_local_agent_control_url_is_localhost_port(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        plan = LaunchOrchestrator(config, launcher).plan(launch_request)

        agent_url_index = plan.arguments.index("--agent-url")
        assert plan.arguments[agent_url_index + 1] == "http://localhost:8123"
        assert plan.directive is not None
        assert plan.directive.endswith("http-server-port=8123")

    def test_partition_template_uses_task_name(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        plan = LaunchOrchestrator(config, launcher).plan(launch_request)

        assert plan.arguments[plan.arguments.index("--partition") + 1] == "test"

    def test_scan_paths_come_from_build_units(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        plan = LaunchOrchestrator(config, launcher).plan(launch_request)

        build_dir = launch_request.context.build_dir
        scan = plan.arguments[plan.arguments.index("--scan-class-path") + 1]
        assert scan.split(os.pathsep) == [str(build_dir / "classes"), str(build_dir / "resources")]

    def test_class_dump_dir_when_enabled(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        agent = config.agent.model_copy(update={"dump_classes": True})
        plan = LaunchOrchestrator(_with(config, agent=agent), launcher).plan(launch_request)

        assert plan.directive is not None
        assert "classdumpdir=build/tmp/jacoco/classes/test" in plan.directive

    def test_plan_has_no_filesystem_side_effects(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        stale = orchestrator.artifacts.resolve(launch_request.context)
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"stale")

        orchestrator.plan(launch_request)

        assert stale.exists()
        assert orchestrator.state == LaunchState.IDLE
        assert launcher.calls == []


class TestLaunch:
    def test_successful_launch_forwards_exit_code(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        launcher.write_artifact = orchestrator.artifacts.resolve(launch_request.context)

        result = orchestrator.launch(launch_request)

        assert result.exit_code == 0
        assert result.artifact_present
        assert orchestrator.state == LaunchState.COMPLETED
        assert len(launcher.calls) == 1
        call = launcher.calls[0]
        assert call["cwd"] == launch_request.context.working_dir
        assert call["env"]["TIALAUNCH_EXECUTION"] == "1"
        assert call["env"]["TIALAUNCH_RUN_ID"]

    def test_failing_tests_are_not_orchestration_failure(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        launcher.exit_code = 1
        orchestrator = LaunchOrchestrator(config, launcher)

        result = orchestrator.launch(launch_request)

        assert result.exit_code == 1
        assert orchestrator.state == LaunchState.COMPLETED

    def test_missing_artifact_reported_as_absent(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        result = LaunchOrchestrator(config, launcher).launch(launch_request)

        assert not result.artifact_present

    def test_stale_artifact_removed_before_spawn(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        stale = orchestrator.artifacts.resolve(launch_request.context)
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"stale")

        result = orchestrator.launch(launch_request)

        assert not result.artifact_present
        assert not stale.exists()

    def test_reports_dir_created(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        result = LaunchOrchestrator(config, launcher).launch(launch_request)

        assert result.reports_dir.is_dir()

    def test_extra_env_passed_to_process(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        executor = config.executor.model_copy(update={"env": {"JAVA_HOME": "/opt/jdk"}})

        LaunchOrchestrator(_with(config, executor=executor), launcher).launch(launch_request)

        assert launcher.calls[0]["env"]["JAVA_HOME"] == "/opt/jdk"

    def test_timeout_is_passed_to_launcher(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        LaunchOrchestrator(config, launcher).launch(replace(launch_request, timeout_sec=30.0))

        assert launcher.calls[0]["timeout_sec"] == 30.0

    def test_orchestrator_can_launch_again_after_completion(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)

        orchestrator.launch(launch_request)
        orchestrator.launch(launch_request)

        assert len(launcher.calls) == 2


class TestPreparationFailures:
    @pytest.mark.parametrize("field", ["url", "project", "user", "access_token"])
    def test_missing_identity_never_spawns(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any, field: str
    ) -> None:
        server = config.server.model_copy(update={field: None})
        orchestrator = LaunchOrchestrator(_with(config, server=server), launcher)

        with pytest.raises(ConfigurationError):
            orchestrator.launch(launch_request)

        assert launcher.calls == []
        assert orchestrator.state == LaunchState.FAILED

    def test_invalid_port_never_spawns(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        agent = config.agent.model_copy(update={"port": 70000})
        orchestrator = LaunchOrchestrator(_with(config, agent=agent), launcher)

        with pytest.raises(ConfigurationError):
            orchestrator.launch(launch_request)

        assert launcher.calls == []

    def test_invalid_pattern_never_spawns(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        request = replace(launch_request, selection_filter=TestSelectionFilter(exclude_classes=("com/{a,b}",)))
        orchestrator = LaunchOrchestrator(config, launcher)

        with pytest.raises(PatternError):
            orchestrator.launch(request)

        assert launcher.calls == []
        assert orchestrator.state == LaunchState.FAILED

    def test_remote_agent_without_url_never_spawns(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(_with(config, agent=AgentSettings(mode="remote")), launcher)

        with pytest.raises(ConfigurationError):
            orchestrator.launch(launch_request)

        assert launcher.calls == []

    def test_stale_artifact_kept_when_configuration_invalid(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(_with(config, server=ServerConfig()), launcher)
        stale = orchestrator.artifacts.resolve(launch_request.context)
        stale.parent.mkdir(parents=True)
        stale.write_bytes(b"stale")

        with pytest.raises(ConfigurationError):
            orchestrator.launch(launch_request)

        assert stale.exists()


class TestSpawnFailures:
    def test_empty_classpath(self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any) -> None:
        orchestrator = LaunchOrchestrator(_with(config, executor=ExecutorConfig(java=sys.executable)), launcher)

        with pytest.raises(SpawnError) as exc_info:
            orchestrator.launch(launch_request)

        assert exc_info.value.code == ErrorCode.LAUNCH_EMPTY_CLASSPATH
        assert launcher.calls == []
        assert orchestrator.state == LaunchState.FAILED

    def test_missing_executable(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any, tmp_path: Path
    ) -> None:
        executor = config.executor.model_copy(update={"java": str(tmp_path / "no-such-java")})
        orchestrator = LaunchOrchestrator(_with(config, executor=executor), launcher)

        with pytest.raises(SpawnError) as exc_info:
            orchestrator.launch(launch_request)

        assert exc_info.value.code == ErrorCode.LAUNCH_EXECUTABLE_NOT_FOUND
        assert launcher.calls == []

    def test_os_error_from_launcher(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        launcher.raises = PermissionError("not executable")
        orchestrator = LaunchOrchestrator(config, launcher)

        with pytest.raises(SpawnError) as exc_info:
            orchestrator.launch(launch_request)

        assert exc_info.value.code == ErrorCode.LAUNCH_OS_FAILURE
        assert orchestrator.state == LaunchState.FAILED

    def test_malformed_directive(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        agent = config.agent.model_copy(update={"includes": ["com.a,b"]})
        orchestrator = LaunchOrchestrator(_with(config, agent=agent), launcher)

        with pytest.raises(SpawnError) as exc_info:
            orchestrator.launch(launch_request)

        assert exc_info.value.code == ErrorCode.LAUNCH_MALFORMED_DIRECTIVE
        assert launcher.calls == []


class TestCancellation:
    def test_timeout_removes_artifact_and_fails(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        artifact = orchestrator.artifacts.resolve(launch_request.context)
        launcher.write_artifact = artifact
        launcher.raises = TimeoutError("killed")

        with pytest.raises(LaunchCancelledError):
            orchestrator.launch(replace(launch_request, timeout_sec=1.0))

        assert not artifact.exists()
        assert orchestrator.state == LaunchState.FAILED

    def test_interrupt_removes_artifact_and_fails(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        artifact = orchestrator.artifacts.resolve(launch_request.context)
        launcher.write_artifact = artifact
        launcher.raises = KeyboardInterrupt()

        with pytest.raises(KeyboardInterrupt):
            orchestrator.launch(launch_request)

        assert not artifact.exists()
        assert orchestrator.state == LaunchState.FAILED

    def test_can_launch_again_after_interrupt(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest, launcher: Any
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        launcher.raises = KeyboardInterrupt()
        with pytest.raises(KeyboardInterrupt):
            orchestrator.launch(launch_request)

        launcher.raises = None
        result = orchestrator.launch(launch_request)

        assert result.exit_code == 0
        assert orchestrator.state == LaunchState.COMPLETED

    def test_timeout_reported_when_artifact_cannot_be_removed(
        self,
        config: TiaLaunchConfig,
        launch_request: LaunchRequest,
        launcher: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        orchestrator = LaunchOrchestrator(config, launcher)
        artifact = orchestrator.artifacts.resolve(launch_request.context)
        launcher.write_artifact = artifact
        launcher.raises = TimeoutError("killed")

        def locked_reset(path: Path) -> None:
            if path.exists():
                raise SpawnError.artifact_reset_failed(str(path), "file is locked")

        monkeypatch.setattr(orchestrator.artifacts, "reset", locked_reset)

        with pytest.raises(LaunchCancelledError):
            orchestrator.launch(replace(launch_request, timeout_sec=1.0))

        assert orchestrator.state == LaunchState.FAILED


class TestSingleLaunch:
    def test_concurrent_launch_rejected(
        self, config: TiaLaunchConfig, launch_request: LaunchRequest
    ) -> None:
        started = threading.Event()
        release = threading.Event()

        class BlockingLauncher:
            def run(
                self,
                command: list[str],
                *,
                cwd: Path,
                env: dict[str, str],
                timeout_sec: float | None = None,
            ) -> int:
                started.set()
                release.wait(timeout=5)
                return 0

        orchestrator = LaunchOrchestrator(config, BlockingLauncher())
        worker = threading.Thread(target=orchestrator.launch, args=(launch_request,))
        worker.start()
        try:
            assert started.wait(timeout=5)
            with pytest.raises(LaunchInProgressError):
                orchestrator.launch(launch_request)
            assert orchestrator.state == LaunchState.RUNNING
        finally:
            release.set()
            worker.join(timeout=5)

        assert orchestrator.state == LaunchState.COMPLETED


class TestCheckDirective:
    def test_accepts_built_directive(self) -> None:
        check_directive("-javaagent:agent.jar=destfile=a.exec,http-server-port=8123")

    @pytest.mark.parametrize(
        "directive",
        [
            "agent.jar=destfile=a.exec",
            "-javaagent:agent.jar",
            "-javaagent:=destfile=a.exec",
            "-javaagent:agent.jar=destfile=a.exec,unknown=1",
            "-javaagent:agent.jar=destfile=a.exec,b",
        ],
    )
    def test_rejects_malformed(self, directive: str) -> None:
        with pytest.raises(SpawnError):
            check_directive(directive)


class TestSubprocessLauncher:
    def test_returns_exit_code(self, tmp_path: Path) -> None:
        code = SubprocessLauncher().run(
            [sys.executable, "-c", "import sys; sys.exit(3)"],
            cwd=tmp_path,
            env=dict(os.environ),
        )

        assert code == 3

    def test_runs_in_given_working_dir(self, tmp_path: Path) -> None:
        SubprocessLauncher().run(
            [sys.executable, "-c", "open('marker', 'w').close()"],
            cwd=tmp_path,
            env=dict(os.environ),
        )

        assert (tmp_path / "marker").exists()

    def test_timeout_kills_process(self, tmp_path: Path) -> None:
        with pytest.raises(TimeoutError):
            SubprocessLauncher().run(
                [sys.executable, "-c", "import time; time.sleep(30)"],
                cwd=tmp_path,
                env=dict(os.environ),
                timeout_sec=0.5,
            )

    def test_interrupted_wait_kills_process(self, tmp_path: Path) -> None:
        proc = MagicMock()
        proc.wait.side_effect = [KeyboardInterrupt(), 0]

        with patch("tialaunch.launch.orchestrator.subprocess.Popen", return_value=proc):
            with pytest.raises(KeyboardInterrupt):
                SubprocessLauncher().run(["java"], cwd=tmp_path, env={})

        proc.kill.assert_called_once_with()
        assert proc.wait.call_count == 2
