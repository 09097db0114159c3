"""Impacted test launch - directive, arguments, and orchestration."""

from tialaunch.launch.agent import AgentDirectiveBuilder
from tialaunch.launch.artifacts import ExecutionArtifactManager
from tialaunch.launch.models import (
    BuildUnit,
    LaunchRequest,
    LaunchResult,
    LaunchState,
    LocalAgent,
    RemoteAgent,
    RevisionPoint,
    RevisionWindow,
    RunContext,
    ServerIdentity,
    TestSelectionFilter,
)
from tialaunch.launch.orchestrator import LaunchOrchestrator, ProcessLauncher, SubprocessLauncher
from tialaunch.launch.patterns import ExactPattern, normalize
from tialaunch.launch.request import SelectionRequestBuilder

__all__ = [
    "AgentDirectiveBuilder",
    "BuildUnit",
    "ExactPattern",
    "ExecutionArtifactManager",
    "LaunchOrchestrator",
    "LaunchRequest",
    "LaunchResult",
    "LaunchState",
    "LocalAgent",
    "ProcessLauncher",
    "RemoteAgent",
    "RevisionPoint",
    "RevisionWindow",
    "RunContext",
    "SelectionRequestBuilder",
    "ServerIdentity",
    "SubprocessLauncher",
    "TestSelectionFilter",
    "normalize",
]
