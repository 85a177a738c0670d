# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import interfaces

vollog = logging.getLogger(__name__)


class MemoryAttributeProtocolPresent(interfaces.checks.CheckInterface):
    """Verifies that the platform can query and set memory attributes."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.IsMemoryAttributeProtocolPresent"
    description = "Memory Attribute Protocol is present"
    priority = 30

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        if not self.context.has_memory_attribute_interface():
            vollog.error(f"{verdict.name}: Memory attribute protocol not found")
            verdict.record(0, 0, "memory attribute protocol not present")
            verdict.passed = False
