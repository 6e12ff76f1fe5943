"""Utilities for printing scenario summary tables."""
from __future__ import annotations

import os
from typing import Any, Iterable

try:
    MAX_ERROR_WIDTH = int(os.getenv("MAX_ERROR_WIDTH", "80"))
except ValueError:
    MAX_ERROR_WIDTH = 80


_PLACEHOLDERS = {"-", ""}


def _is_number(text: str) -> bool:
    try:
        float(text.replace(",", "").rstrip("%"))
    except ValueError:
        return False
    return True


def _format_table(headers: Iterable[str], rows: Iterable[Iterable[Any]]) -> str:
    """Return a ``|``-separated table sized to its widest cells.

    A column is right aligned when every filled cell is a number; ``-``
    placeholders do not count either way.
    """
    body = [[str(c) for c in row] for row in rows]
    columns = []
    for column in zip([str(h) for h in headers], *body):
        width = max(len(c) for c in column)
        values = [c for c in column[1:] if c not in _PLACEHOLDERS]
        right = bool(values) and all(_is_number(c) for c in values)
        columns.append([c.rjust(width) if right else c.ljust(width) for c in column])

    header, *lines = (" | ".join(cells) for cells in zip(*columns))
    sep = "-+-".join("-" * len(cells[0]) for cells in columns)
    return "\n".join([header, sep, *lines])


def _shorten(text: str, width: int = MAX_ERROR_WIDTH) -> str:
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def format_job_results_table(results: Iterable[Any]) -> str:
    """Table of scenario jobs: label, status, duration and error.

    ``results`` holds :class:`~query_node_harness.scenarios.scenario.JobResult`
    items (anything with ``label``, ``status``, ``duration_s`` and ``error``).
    """
    headers = ["Job", "Status", "Duration (s)", "Error"]
    rows = []
    for res in results:
        error = "-" if res.error is None else _shorten(f"{type(res.error).__name__}: {res.error}")
        duration = "-" if res.duration_s is None else f"{res.duration_s:.2f}"
        rows.append([res.label, res.status, duration, error])
    return _format_table(headers, rows)


def print_job_results_table(scenario_name: str, results: Iterable[Any]) -> None:
    results = list(results)
    if not results:
        print(f"Scenario '{scenario_name}' has no jobs")
        return
    print(f"\nTable: Scenario '{scenario_name}' Jobs")
    print(format_job_results_table(results))
