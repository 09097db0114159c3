"""Aggregation of compiled output directories across build units."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from tialaunch.launch.models import BuildUnit


def collect_scan_paths(units: Iterable[BuildUnit]) -> list[Path]:
    """Class, resource and extra output dirs of all units.

    Order is first-seen across units (classes, then resources, then extras);
    duplicates and absent resource dirs are dropped.
    """
    seen: set[Path] = set()
    paths: list[Path] = []
    for unit in units:
        candidates: list[Path | None] = [*unit.classes_dirs, unit.resources_dir, *unit.extra_dirs]
        for candidate in candidates:
            if candidate is None or candidate in seen:
                continue
            seen.add(candidate)
            paths.append(candidate)
    return paths


def join_scan_paths(paths: Iterable[Path | str]) -> str:
    """Join with the platform path-list separator, keeping first occurrences."""
    unique: dict[str, None] = {}
    for path in paths:
        text = str(path)
        if text:
            unique.setdefault(text, None)
    return os.pathsep.join(unique)
