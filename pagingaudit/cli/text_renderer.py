# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import json
import logging
import sys
from abc import ABCMeta, abstractmethod
from functools import wraps
from typing import IO, Any, Callable, Dict, List, Optional

from pagingaudit.framework import checks, renderers
from pagingaudit.framework.renderers import format_hints

vollog = logging.getLogger(__name__)


def optional(func: Callable) -> Callable:
    @wraps(func)
    def wrapped(x: Any) -> str:
        if x is None:
            return "-"
        return func(x)

    return wrapped


class CLIRenderer(metaclass=ABCMeta):
    """Class to add specific requirements for CLI renderers."""

    name = "unnamed"
    structured_output = False

    def __init__(self, outfd: Optional[IO[str]] = None) -> None:
        self._outfd = outfd

    @property
    def outfd(self) -> IO[str]:
        return self._outfd or sys.stdout

    @abstractmethod
    def render(self, result: checks.AuditResult) -> None:
        """Writes the audit result to the output."""


class QuickTextRenderer(CLIRenderer):
    _type_renderers = {
        format_hints.Hex: optional(lambda x: f"0x{x:x}"),
        "default": optional(lambda x: f"{x}"),
    }

    name = "quick"

    def render(self, result: checks.AuditResult) -> None:
        """Renders each row immediately.

        This does not format each line's width appropriately, it merely tab separates each field
        """
        outfd = self.outfd
        outfd.write(
            "\n{}\n".format("\t".join(column.name for column in renderers.COLUMNS))
        )
        for row in renderers.result_rows(result):
            line = []
            for column, value in zip(renderers.COLUMNS, row):
                renderer = self._type_renderers.get(
                    column.type, self._type_renderers["default"]
                )
                line.append(renderer(value))
            outfd.write("\n{}".format("\t".join(line)))
        outfd.write("\n")


class PrettyTextRenderer(CLIRenderer):
    _type_renderers = QuickTextRenderer._type_renderers

    name = "pretty"

    def render(self, result: checks.AuditResult) -> None:
        """Renders the rows as aligned columns, followed by a summary."""
        outfd = self.outfd
        column_separator = " | "

        max_column_widths = {
            column.name: len(column.name) for column in renderers.COLUMNS
        }
        final_output: List[List[str]] = []
        for row in renderers.result_rows(result):
            line = []
            for column, value in zip(renderers.COLUMNS, row):
                renderer = self._type_renderers.get(
                    column.type, self._type_renderers["default"]
                )
                data = renderer(value)
                max_column_widths[column.name] = max(
                    max_column_widths[column.name], len(data)
                )
                line.append(data)
            final_output.append(line)

        format_string = (
            column_separator.join(
                "{"
                + str(index)
                + ":"
                + ("<" if column.type == str else ">")
                + str(max_column_widths[column.name])
                + "s}"
                for index, column in enumerate(renderers.COLUMNS)
            )
            + "\n"
        )

        outfd.write(format_string.format(*[column.name for column in renderers.COLUMNS]))
        for line in final_output:
            outfd.write(format_string.format(*line))

        outfd.write("\n")
        for line in renderers.summary(result):
            outfd.write(line + "\n")
        outfd.write(
            f"\n{len(result.verdicts) - len(result.failures)} passed, {len(result.failures)} failed\n"
        )


class JsonRenderer(CLIRenderer):
    name = "json"
    structured_output = True

    def output_result(self, outfd: IO[str], result: List[Dict[str, Any]]) -> None:
        """Outputs the JSON data to a file in a particular format"""
        outfd.write(json.dumps(result, indent=2, sort_keys=True))
        outfd.write("\n")

    def render(self, result: checks.AuditResult) -> None:
        output = []
        for verdict in result.verdicts:
            output.append(
                {
                    "test_id": verdict.name,
                    "description": verdict.description,
                    "passed": verdict.passed,
                    "diagnostics": [
                        {
                            "start": diagnostic.range_start,
                            "end": diagnostic.range_end,
                            "reason": diagnostic.reason,
                        }
                        for diagnostic in verdict.diagnostics
                    ],
                }
            )
        self.output_result(self.outfd, output)


class JsonLinesRenderer(JsonRenderer):
    name = "jsonl"

    def output_result(self, outfd: IO[str], result: List[Dict[str, Any]]) -> None:
        """Outputs the JSON results as JSON lines"""
        for line in result:
            outfd.write(json.dumps(line, sort_keys=True))
            outfd.write("\n")
