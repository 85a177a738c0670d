# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""All core audit checks.

Every module in this package is imported by the command line, and any
non-abstract :class:`~pagingaudit.framework.interfaces.checks.CheckInterface`
subclass it defines becomes available to run.
"""

import dataclasses
import logging
from typing import Iterable, List, Type

from pagingaudit.framework import contexts, interfaces

vollog = logging.getLogger(__name__)


@dataclasses.dataclass
class AuditResult:
    """The verdicts of a complete audit run."""

    verdicts: List[interfaces.checks.AuditVerdict] = dataclasses.field(
        default_factory=list
    )

    @property
    def passed(self) -> bool:
        return all(verdict.passed for verdict in self.verdicts)

    @property
    def failures(self) -> List[interfaces.checks.AuditVerdict]:
        return [verdict for verdict in self.verdicts if not verdict.passed]


def run_checks(
    context: contexts.AuditContext,
    checks: Iterable[Type[interfaces.checks.CheckInterface]],
) -> AuditResult:
    """Runs each check in turn against the context's snapshots.

    A check that aborts only fails its own verdict, the remaining checks
    still run.

    Args:
        context: The audit context holding the platform snapshots
        checks: The check classes to run, in order

    Returns:
        The aggregated verdicts
    """
    result = AuditResult()
    for check in checks:
        verdict = check(context).run()
        result.verdicts.append(verdict)

    vollog.info(
        f"Ran {len(result.verdicts)} checks, {len(result.failures)} failed"
    )
    return result
