# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Checks are the `functions` of the audit framework.

Each check verifies a single security invariant against the snapshots
held by an :class:`~pagingaudit.framework.contexts.AuditContext` and
produces an :class:`AuditVerdict`.
"""
import dataclasses
import logging
from abc import ABCMeta, abstractmethod
from typing import List, Tuple

from pagingaudit import classproperty
from pagingaudit import framework
from pagingaudit.framework import constants, contexts, exceptions

vollog = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Diagnostic:
    """A single offending range reported by a check."""

    range_start: int
    range_end: int
    reason: str

    def __str__(self) -> str:
        if self.range_start == self.range_end:
            return self.reason
        return f"0x{self.range_start:x}-0x{self.range_end:x}: {self.reason}"


@dataclasses.dataclass
class AuditVerdict:
    """The outcome of one check invocation."""

    name: str
    description: str = ""
    passed: bool = True
    diagnostics: List[Diagnostic] = dataclasses.field(default_factory=list)

    def record(self, range_start: int, range_end: int, reason: str) -> None:
        """Adds a diagnostic without changing the verdict."""
        self.diagnostics.append(Diagnostic(range_start, range_end, reason))

    def fail(self, range_start: int, range_end: int, reason: str) -> None:
        """Logs an offending range and marks the verdict as failed."""
        vollog.error(f"{self.name}: Region 0x{range_start:x}-0x{range_end:x} {reason}")
        self.record(range_start, range_end, reason)
        self.passed = False

    def log_mismatch(
        self,
        range_start: int,
        range_end: int,
        expected: int,
        match: constants.MatchMode,
        observed: int,
    ) -> None:
        """Records an attribute mismatch for a sub-range."""
        kind = "any" if match == constants.MatchMode.ANY else "all"
        self.record(
            range_start,
            range_end,
            f"expected {kind} of {constants.Attribute.describe(expected)}, "
            f"observed {constants.Attribute.describe(observed)}",
        )


class CheckInterface(metaclass=ABCMeta):
    """Class that defines the basic interface that all checks must maintain.

    The constructor only takes the audit context, so that checks can be
    launched automatically by the harness.
    """

    _version: Tuple[int, int, int] = (0, 0, 0)
    _required_framework_version: Tuple[int, int, int] = (0, 0, 0)

    test_id: str = ""
    """The stable identifier results are reported under"""

    description: str = ""
    """A one line description of the invariant"""

    priority: int = 100
    """Checks run in ascending priority order"""

    def __init__(self, context: contexts.AuditContext) -> None:
        framework.require_interface_version(*self._required_framework_version)
        self._context = context

    @classproperty
    def version(cls) -> Tuple[int, int, int]:
        """The version of the check, following Semantic Versioning."""
        return cls._version

    @property
    def context(self) -> contexts.AuditContext:
        return self._context

    def run(self) -> AuditVerdict:
        """Executes the check, converting framework failures into a failed verdict.

        Returns:
            The verdict, carrying every offending range found
        """
        verdict = AuditVerdict(self.test_id or self.__class__.__name__, self.description)
        vollog.debug(f"{verdict.name} Enter...")
        try:
            self._check(verdict)
        except exceptions.PagingAuditException as excp:
            vollog.error(f"{verdict.name} aborted: {excp}")
            verdict.record(0, 0, f"aborted: {excp}")
            verdict.passed = False
        vollog.info(f"{verdict.name}: {'PASS' if verdict.passed else 'FAIL'}")
        return verdict

    @abstractmethod
    def _check(self, verdict: AuditVerdict) -> None:
        """Verifies the invariant, recording failures on the verdict."""
