"""Launch orchestration for impacted test runs.

Prepares the agent directive and executor arguments, spawns the executor in
the host test task's working directory, and forwards its exit status.

State machine:

    IDLE -> PREPARING -> RUNNING -> COMPLETED
                 |           |
                 +-> FAILED <+

Configuration errors surface from PREPARING before anything is spawned.
Spawn errors surface from RUNNING. A failing test run is COMPLETED with a
non-zero exit code.
"""

from __future__ import annotations

import os
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from tialaunch.core.errors import (
    ConfigurationError,
    LaunchCancelledError,
    LaunchInProgressError,
    SpawnError,
    TiaLaunchError,
)
from tialaunch.core.logging import clear_run_id, set_run_id
from tialaunch.launch.agent import DIRECTIVE_KEYS, DIRECTIVE_PREFIX, AgentDirectiveBuilder
from tialaunch.launch.artifacts import ExecutionArtifactManager
from tialaunch.launch.models import LaunchPlan, LaunchRequest, LaunchResult, LaunchState
from tialaunch.launch.request import SelectionRequestBuilder, mask_secrets
from tialaunch.launch.scan_paths import collect_scan_paths

if TYPE_CHECKING:
    from tialaunch.config.models import TiaLaunchConfig

log = structlog.get_logger()


class ProcessLauncher(Protocol):
    def run(
        self,
        command: list[str],
        *,
        cwd: Path,
        env: dict[str, str],
        timeout_sec: float | None = None,
    ) -> int:
        """Run the command to completion and return its exit code.

        Raises:
            OSError: The process could not be started.
            TimeoutError: The timeout expired; the process has been killed.
        """
        ...


class SubprocessLauncher:
    """Runs the executor as a child process sharing this process's stdio."""

    def run(
        self,
        command: list[str],
        *,
        cwd: Path,
        env: dict[str, str],
        timeout_sec: float | None = None,
    ) -> int:
        proc = subprocess.Popen(command, cwd=cwd, env=env)
        try:
            return proc.wait(timeout=timeout_sec)
        except subprocess.TimeoutExpired as e:
            proc.kill()
            proc.wait()
            raise TimeoutError(f"executor did not finish within {timeout_sec}s") from e
        except BaseException:
            proc.kill()
            proc.wait()
            raise


def check_directive(directive: str) -> None:
    """Reject a directive the JVM or agent would not parse.

    Raises:
        SpawnError: Missing prefix, missing jar, or an unknown/valueless option.
    """
    if not directive.startswith(DIRECTIVE_PREFIX):
        raise SpawnError.malformed_directive(directive)
    jar, sep, options = directive[len(DIRECTIVE_PREFIX) :].partition("=")
    if not jar or not sep or not options:
        raise SpawnError.malformed_directive(directive)
    for option in options.split(","):
        key, sep, value = option.partition("=")
        if key not in DIRECTIVE_KEYS or not sep or not value:
            raise SpawnError.malformed_directive(directive)


class LaunchOrchestrator:
    """Coordinates one impacted test launch at a time.

    The configuration is passed in explicitly; the launcher is replaceable so
    callers (and tests) can observe spawns without starting a JVM.
    """

    def __init__(
        self,
        config: TiaLaunchConfig,
        launcher: ProcessLauncher | None = None,
    ) -> None:
        self._config = config
        self._launcher = launcher or SubprocessLauncher()
        self._artifacts = ExecutionArtifactManager(config.report)
        self._directives = AgentDirectiveBuilder()
        self._requests = SelectionRequestBuilder()
        self._state = LaunchState.IDLE
        self._lock = threading.Lock()

    @property
    def state(self) -> LaunchState:
        return self._state

    @property
    def artifacts(self) -> ExecutionArtifactManager:
        return self._artifacts

    def plan(self, request: LaunchRequest) -> LaunchPlan:
        """Build the directive, arguments and command without side effects.

        Raises:
            ConfigurationError: Invalid identity, agent or filter configuration.
        """
        context = request.context
        artifact = self._artifacts.resolve(context)
        reports_dir = self._artifacts.reports_dir(context)
        agent = self._config.agent.to_agent(dump_dir=self._artifacts.dump_dir(context))

        directive = self._directives.build(agent, artifact, context.working_dir)
        arguments = self._requests.build(
            identity=self._config.server.to_identity(),
            window=request.window,
            selection_filter=request.selection_filter,
            reports_dir=reports_dir,
            scan_paths=collect_scan_paths(context.units),
            run_all_tests=request.run_all_tests,
            agent_control_url=agent.control_url,
            partition=self._config.report.partition_for(context.task_name),
        )

        executor = self._config.executor
        command = [executor.java, *executor.jvm_args]
        if directive is not None:
            command.append(directive)
        if executor.classpath:
            command.extend(["-cp", os.pathsep.join(str(p) for p in executor.classpath)])
        command.append(executor.main_class)
        command.extend(arguments)

        return LaunchPlan(
            command=command,
            arguments=arguments,
            directive=directive,
            working_dir=context.working_dir,
            env=self._build_env(),
            artifact=artifact,
            reports_dir=reports_dir,
        )

    def launch(self, request: LaunchRequest) -> LaunchResult:
        """Prepare, spawn and await the executor.

        Returns:
            The forwarded exit code and the state of the coverage artifact.

        Raises:
            ConfigurationError: Preparation failed; nothing was spawned.
            SpawnError: The executor could not be started.
            LaunchCancelledError: The timeout expired and the executor was killed.
            LaunchInProgressError: Another launch is preparing or running.

        Any other exception (including KeyboardInterrupt) also leaves the
        state FAILED; if it interrupted a running executor the artifact is
        removed first.
        """
        if not self._lock.acquire(blocking=False):
            raise LaunchInProgressError.busy(self._state.value)
        run_id = set_run_id()
        try:
            plan = self._prepare(request)
            return self._run(plan, request.timeout_sec, run_id)
        except TiaLaunchError as e:
            self._state = LaunchState.FAILED
            log.error("launch.failed", error=e.error_name, message=e.message)
            raise
        except BaseException:
            self._state = LaunchState.FAILED
            log.error("launch.interrupted")
            raise
        finally:
            clear_run_id()
            self._lock.release()

    def _prepare(self, request: LaunchRequest) -> LaunchPlan:
        self._state = LaunchState.PREPARING
        log.info(
            "launch.preparing",
            task=request.context.task_name,
            baseline=str(request.window.baseline),
            end=str(request.window.end),
            run_all_tests=request.run_all_tests,
        )
        plan = self.plan(request)

        self._artifacts.prepare(request.context)
        try:
            plan.reports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError.invalid_value("report.reports_subdir", plan.reports_dir, str(e)) from e
        return plan

    def _run(self, plan: LaunchPlan, timeout_sec: float | None, run_id: str) -> LaunchResult:
        self._state = LaunchState.RUNNING
        self._check_spawnable(plan)

        env = {**plan.env, "TIALAUNCH_RUN_ID": run_id}
        log.info("launch.spawning", working_dir=str(plan.working_dir), directive=plan.directive)
        log.debug("launch.arguments", args=mask_secrets(plan.arguments))

        started = time.monotonic()
        try:
            exit_code = self._launcher.run(
                plan.command, cwd=plan.working_dir, env=env, timeout_sec=timeout_sec
            )
        except TimeoutError as e:
            self._discard_artifact(plan.artifact)
            raise LaunchCancelledError.timed_out(timeout_sec or 0.0) from e
        except OSError as e:
            raise SpawnError.os_failure(plan.command[0], str(e)) from e
        except BaseException:
            self._discard_artifact(plan.artifact)
            raise

        result = LaunchResult(
            exit_code=exit_code,
            artifact=plan.artifact,
            artifact_present=plan.artifact.is_file(),
            reports_dir=plan.reports_dir,
            duration_seconds=time.monotonic() - started,
        )
        self._state = LaunchState.COMPLETED
        log.info(
            "launch.completed",
            exit_code=exit_code,
            artifact_present=result.artifact_present,
            duration_seconds=round(result.duration_seconds, 2),
        )
        if not result.artifact_present:
            log.warning("launch.no_coverage", artifact=str(plan.artifact))
        return result

    def _discard_artifact(self, artifact: Path) -> None:
        """Remove the artifact of a killed run; its contents are indeterminate.

        A failed removal is logged so it does not mask why the run stopped.
        """
        try:
            self._artifacts.reset(artifact)
        except SpawnError as e:
            log.warning("artifact.discard_failed", path=str(artifact), reason=e.details.get("reason"))

    def _check_spawnable(self, plan: LaunchPlan) -> None:
        executor = self._config.executor
        if not executor.classpath:
            raise SpawnError.empty_classpath()
        if shutil.which(executor.java) is None:
            raise SpawnError.executable_not_found(executor.java)
        if plan.directive is not None:
            check_directive(plan.directive)

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self._config.executor.env)
        env["TIALAUNCH_EXECUTION"] = "1"
        return env
