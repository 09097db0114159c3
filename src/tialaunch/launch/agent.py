"""Attachment directive for the coverage agent.

A local agent is attached to the spawned JVM with a single option:

    -javaagent:<jar>=destfile=<file>,includes=<a:b>,excludes=<c>,http-server-port=<port>

The control port is how test start/end boundaries reach the agent, so it is
mandatory for a local agent. Without it coverage collapses to one record for
the whole run.
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from pathlib import Path

from tialaunch.core.errors import ConfigurationError
from tialaunch.launch.models import AgentConfiguration, LocalAgent, RemoteAgent

DIRECTIVE_PREFIX = "-javaagent:"
DIRECTIVE_KEYS = ("destfile", "includes", "excludes", "classdumpdir", "http-server-port")


def _relative(path: Path, working_dir: Path) -> str:
    try:
        return os.path.relpath(path, working_dir)
    except ValueError:
        # Different drive on Windows
        return str(path)


class _OptionAppender:
    """Collects ``key=value`` agent options, dropping empty values."""

    def __init__(self, working_dir: Path) -> None:
        self._working_dir = working_dir
        self._options: list[str] = []

    def append(self, name: str, value: Path | str | int | Sequence[str] | None) -> None:
        if value is None:
            return
        if isinstance(value, Path):
            text = _relative(value, self._working_dir)
        elif isinstance(value, (str, int)):
            text = str(value)
        else:
            text = ":".join(value)
        if text:
            self._options.append(f"{name}={text}")

    def render(self) -> str:
        return ",".join(self._options)


def validate_port(port: object) -> int:
    """Return the port if usable as a control port.

    Raises:
        ConfigurationError: Missing, non-integer or out of 1-65535.
    """
    if port is None:
        raise ConfigurationError.missing_required("agent.port")
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigurationError.invalid_value("agent.port", port, "must be an integer")
    if not 1 <= port <= 65535:
        raise ConfigurationError.invalid_value("agent.port", port, "must be 1-65535")
    return port


class AgentDirectiveBuilder:
    def build(
        self,
        agent: AgentConfiguration,
        artifact: Path,
        working_dir: Path,
    ) -> str | None:
        """Build the attachment directive, or None for a pre-attached agent.

        Raises:
            ConfigurationError: Local agent without a jar or a valid port.
        """
        if isinstance(agent, RemoteAgent):
            return None
        if not isinstance(agent, LocalAgent):
            raise ConfigurationError.invalid_value("agent", agent, "unknown agent variant")

        port = validate_port(agent.port)
        if agent.jar is None:
            raise ConfigurationError.missing_required("agent.jar")

        options = _OptionAppender(working_dir)
        options.append("destfile", artifact)
        options.append("includes", agent.includes)
        options.append("excludes", agent.excludes)
        options.append("classdumpdir", agent.dump_dir)
        options.append("http-server-port", port)

        return f"{DIRECTIVE_PREFIX}{_relative(agent.jar, working_dir)}={options.render()}"
