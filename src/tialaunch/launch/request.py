"""Argument vector for the impacted tests executor.

The executor parses these flags itself and is built separately from this
package, so flag spelling and order must stay exactly as emitted here:

    --url --project --user --access-token --partition --baseline --end
    --agent-url [--all] -t.. -T.. -e.. -E.. -n.. -N.. --reports-dir
    --scan-class-path
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

from tialaunch.core.errors import ConfigurationError
from tialaunch.launch.models import RevisionWindow, ServerIdentity, TestSelectionFilter
from tialaunch.launch.patterns import MATCH_ALL, normalize
from tialaunch.launch.scan_paths import join_scan_paths

SECRET_FLAGS = frozenset({"--access-token"})


def _require(field: str, value: str | None) -> str:
    if not value:
        raise ConfigurationError.missing_required(field)
    return value


def mask_secrets(args: list[str]) -> list[str]:
    """Copy of args with secret flag values replaced, for logging."""
    masked = list(args)
    for i, arg in enumerate(masked[:-1]):
        if arg in SECRET_FLAGS:
            masked[i + 1] = "****"
    return masked


class SelectionRequestBuilder:
    """Builds the executor's argument vector. No side effects."""

    def build(
        self,
        identity: ServerIdentity,
        window: RevisionWindow,
        selection_filter: TestSelectionFilter,
        reports_dir: Path,
        scan_paths: Iterable[Path | str],
        run_all_tests: bool,
        agent_control_url: str,
        partition: str,
    ) -> list[str]:
        """Assemble the arguments.

        Raises:
            ConfigurationError: A required identity field, the partition,
                a revision point or the agent URL is empty.
            PatternError: A class filter cannot be compiled.
        """
        args = [
            "--url", _require("server.url", identity.url),
            "--project", _require("server.project", identity.project),
            "--user", _require("server.user", identity.user),
            "--access-token", _require("server.access_token", identity.access_token),
            "--partition", _require("report.partition", partition),
            "--baseline", self._revision("baseline", window),
            "--end", self._revision("end", window),
            "--agent-url", _require("agent.url", agent_control_url),
        ]  # fmt: skip

        if run_all_tests:
            args.append("--all")

        args.extend(self._filter_args(selection_filter))

        args.extend(["--reports-dir", str(reports_dir.absolute())])
        args.extend(["--scan-class-path", join_scan_paths(scan_paths)])
        return args

    @staticmethod
    def _revision(name: str, window: RevisionWindow) -> str:
        point = getattr(window, name)
        if point is None or point.is_empty:
            raise ConfigurationError.missing_required(f"window.{name}")
        return str(point)

    @staticmethod
    def _filter_args(selection_filter: TestSelectionFilter) -> list[str]:
        args: list[str] = []
        for tag in selection_filter.include_tags:
            args.extend(["-t", tag])
        for tag in selection_filter.exclude_tags:
            args.extend(["-T", tag])
        for engine in selection_filter.include_engines:
            args.extend(["-e", engine])
        for engine in selection_filter.exclude_engines:
            args.extend(["-E", engine])

        # The executor's default class filter only picks up *Test classes
        if not selection_filter.include_classes:
            args.extend(["-n", MATCH_ALL])
        for pattern in selection_filter.include_classes:
            args.extend(["-n", normalize(pattern).regex])
        for pattern in selection_filter.exclude_classes:
            args.extend(["-N", normalize(pattern).regex])
        return args
