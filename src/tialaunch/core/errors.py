"""tialaunch error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Launch
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004
    CONFIG_INVALID_PATTERN = 2005

    # Launch (3xxx)
    LAUNCH_EXECUTABLE_NOT_FOUND = 3001
    LAUNCH_EMPTY_CLASSPATH = 3002
    LAUNCH_OS_FAILURE = 3003
    LAUNCH_MALFORMED_DIRECTIVE = 3004
    LAUNCH_ARTIFACT_RESET_FAILED = 3005
    LAUNCH_CANCELLED = 3006
    LAUNCH_IN_PROGRESS = 3007


@dataclass(frozen=True, slots=True)
class TiaLaunchError(Exception):
    """Base error with structured context for callers and logs."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigurationError(TiaLaunchError):
    """Configuration-related errors. Always raised before any process is spawned."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigurationError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class PatternError(ConfigurationError):
    """A class-name filter pattern that cannot be compiled."""

    @classmethod
    def invalid_pattern(cls, pattern: str, reason: str) -> "PatternError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_PATTERN,
            message=f"Invalid class pattern '{pattern}': {reason}",
            details={"pattern": pattern, "reason": reason},
        )


class SpawnError(TiaLaunchError):
    """The selection/execution process could not be started.

    Distinct from a failing test run, which is reported through the
    forwarded exit status.
    """

    @classmethod
    def executable_not_found(cls, executable: str) -> "SpawnError":
        return cls(
            code=ErrorCode.LAUNCH_EXECUTABLE_NOT_FOUND,
            message=f"Executable not found: {executable}",
            details={"executable": executable},
        )

    @classmethod
    def empty_classpath(cls) -> "SpawnError":
        return cls(
            code=ErrorCode.LAUNCH_EMPTY_CLASSPATH,
            message="Executor classpath is empty",
        )

    @classmethod
    def os_failure(cls, command: str, reason: str) -> "SpawnError":
        return cls(
            code=ErrorCode.LAUNCH_OS_FAILURE,
            message=f"Failed to start '{command}': {reason}",
            details={"command": command, "reason": reason},
        )

    @classmethod
    def malformed_directive(cls, directive: str) -> "SpawnError":
        return cls(
            code=ErrorCode.LAUNCH_MALFORMED_DIRECTIVE,
            message=f"Malformed agent directive: {directive}",
            details={"directive": directive},
        )

    @classmethod
    def artifact_reset_failed(cls, path: str, reason: str) -> "SpawnError":
        return cls(
            code=ErrorCode.LAUNCH_ARTIFACT_RESET_FAILED,
            message=f"Could not remove stale coverage file {path}: {reason}",
            details={"path": path, "reason": reason},
        )


class LaunchCancelledError(TiaLaunchError):
    """The spawned process was terminated before it finished."""

    @classmethod
    def timed_out(cls, timeout_sec: float) -> "LaunchCancelledError":
        return cls(
            code=ErrorCode.LAUNCH_CANCELLED,
            message=f"Launch cancelled after {timeout_sec} seconds",
            details={"timeout_sec": timeout_sec},
        )


class LaunchInProgressError(TiaLaunchError):
    """A second launch was requested while one is still preparing or running."""

    @classmethod
    def busy(cls, state: str) -> "LaunchInProgressError":
        return cls(
            code=ErrorCode.LAUNCH_IN_PROGRESS,
            message=f"Another launch is in progress (state: {state})",
            details={"state": state},
        )

