# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Turns audit results into rows of typed columns for the renderers.

Each verdict becomes one row per diagnostic, or a single row when it has
none.  Values that do not apply to a row are None.
"""
import logging
from typing import Any, Iterator, List, NamedTuple, Optional, Tuple

from pagingaudit.framework import checks
from pagingaudit.framework.renderers import format_hints

vollog = logging.getLogger(__name__)


class Column(NamedTuple):
    name: str
    type: Any


COLUMNS = [
    Column("Test", str),
    Column("Result", str),
    Column("Start", format_hints.Hex),
    Column("End", format_hints.Hex),
    Column("Reason", str),
]


def result_rows(
    result: checks.AuditResult,
) -> Iterator[Tuple[Optional[Any], ...]]:
    """Yields one tuple of column values per reported line."""
    for verdict in result.verdicts:
        status = "PASS" if verdict.passed else "FAIL"
        if not verdict.diagnostics:
            yield verdict.name, status, None, None, None
            continue
        for diagnostic in verdict.diagnostics:
            if diagnostic.range_start == diagnostic.range_end:
                yield verdict.name, status, None, None, diagnostic.reason
            else:
                yield (
                    verdict.name,
                    status,
                    format_hints.Hex(diagnostic.range_start),
                    format_hints.Hex(diagnostic.range_end),
                    diagnostic.reason,
                )


def summary(result: checks.AuditResult) -> List[str]:
    """Returns a line per check giving its id, description and verdict."""
    return [
        f"{verdict.name}: {'PASS' if verdict.passed else 'FAIL'}"
        + (f" ({verdict.description})" if verdict.description else "")
        for verdict in result.verdicts
    ]
