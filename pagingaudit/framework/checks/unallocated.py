# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, interfaces, validator

vollog = logging.getLogger(__name__)


class UnallocatedMemoryIsRP(interfaces.checks.CheckInterface):
    """Verifies that free (conventional) memory is read protected or not
    mapped at all."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.UnallocatedMemoryIsRP"
    description = "Unallocated memory is EFI_MEMORY_RP"
    priority = 20

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        table = self.context.page_table()
        memory_map = self.context.memory_map()

        for entry in memory_map.of_type(constants.MemoryType.EfiConventionalMemory):
            if not validator.validate_region(
                table,
                entry.base,
                entry.length,
                constants.Attribute.RP,
                constants.MatchMode.ANY,
                allow_unmapped=True,
                log_mismatch=True,
                sink=verdict,
            ):
                verdict.passed = False
