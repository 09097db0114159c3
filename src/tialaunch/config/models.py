"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (TIALAUNCH__SECTION__KEY)
3. Repo YAML (.tialaunch/config.yaml)
4. Global YAML (~/.config/tialaunch/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    TIALAUNCH__<SECTION>__<KEY>=<VALUE>

Examples:
    TIALAUNCH__LOGGING__LEVEL=DEBUG
    TIALAUNCH__SERVER__ACCESS_TOKEN=secret
    TIALAUNCH__AGENT__PORT=8124
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from tialaunch.launch.models import LocalAgent, RemoteAgent, ServerIdentity

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

DEFAULT_MAIN_CLASS = "org.junit.platform.console.ImpactedTestsExecutor"
DEFAULT_AGENT_PORT = 8123


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        TIALAUNCH__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level. DEBUG prints the full argument vector.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """Analysis server the spawned process talks to.

    All fields are required for a launch but optional here so that partial
    configuration can be layered from YAML, env vars and kwargs. Missing
    values are reported when the selection request is built.

    Env vars:
        TIALAUNCH__SERVER__URL
        TIALAUNCH__SERVER__PROJECT
        TIALAUNCH__SERVER__USER
        TIALAUNCH__SERVER__ACCESS_TOKEN
    """

    url: str | None = None
    project: str | None = None
    user: str | None = None
    access_token: str | None = Field(
        default=None,
        description="Passed to the spawned process as a plain argument. Masked in logs.",
    )

    def to_identity(self) -> ServerIdentity:
        return ServerIdentity(
            url=self.url or "",
            project=self.project or "",
            user=self.user or "",
            access_token=self.access_token or "",
        )


class AgentSettings(BaseModel):
    """Coverage agent configuration.

    Env vars:
        TIALAUNCH__AGENT__MODE: local (attach to the spawned JVM) or remote
        TIALAUNCH__AGENT__URL: URL of an already running agent (remote mode)
        TIALAUNCH__AGENT__PORT: Control port of the attached agent (local mode)
        TIALAUNCH__AGENT__JAR: Path to the agent jar (local mode)
    """

    mode: Literal["local", "remote"] = "local"
    url: str | None = Field(
        default=None,
        description="Control URL of a pre-attached agent. Required in remote mode.",
    )
    port: int = Field(
        default=DEFAULT_AGENT_PORT,
        description="Port the attached agent listens on for test start/end signals.",
    )
    jar: Path | None = None
    includes: list[str] = Field(default_factory=list)
    excludes: list[str] = Field(default_factory=list)
    dump_classes: bool = Field(
        default=False,
        description="Dump instrumented classes into the run's class-dump directory.",
    )

    def to_agent(self, dump_dir: Path | None = None) -> LocalAgent | RemoteAgent:
        """Resolve the tagged agent variant.

        Args:
            dump_dir: Run-scoped class-dump directory, used only when
                dump_classes is enabled.
        """
        if self.mode == "remote":
            return RemoteAgent(url=self.url or "")
        return LocalAgent(
            jar=self.jar,
            port=self.port,
            includes=tuple(self.includes),
            excludes=tuple(self.excludes),
            dump_dir=dump_dir if self.dump_classes else None,
        )


class ExecutorConfig(BaseModel):
    """The spawned selection/execution process.

    Env vars:
        TIALAUNCH__EXECUTOR__JAVA: Java executable (default: java)
        TIALAUNCH__EXECUTOR__MAIN_CLASS: Entry point of the impacted tests executor
    """

    java: str = "java"
    main_class: str = DEFAULT_MAIN_CLASS
    classpath: list[Path] = Field(default_factory=list)
    jvm_args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(
        default_factory=dict,
        description="Extra environment variables for the spawned process.",
    )


class ReportConfig(BaseModel):
    """Run-scoped output locations, relative to the build directory.

    Env vars:
        TIALAUNCH__REPORT__PARTITION: Partition name; '{task}' is replaced by the task name
    """

    partition: str = "{task}"
    reports_subdir: str = "tmp/reports/testwise-coverage"
    artifact_subdir: str = "tmp/jacoco"
    dump_subdir: str = "tmp/jacoco/classes"

    def partition_for(self, task_name: str) -> str:
        return self.partition.replace("{task}", task_name)


class TiaLaunchConfig(BaseModel):
    """Root configuration for tialaunch.

    Passed explicitly to the orchestrator; there is no global instance.
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    agent: AgentSettings = Field(default_factory=AgentSettings)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
