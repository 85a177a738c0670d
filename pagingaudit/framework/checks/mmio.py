# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, interfaces, validator

vollog = logging.getLogger(__name__)


class MmioIsXP(interfaces.checks.CheckInterface):
    """Verifies that memory mapped I/O is non-executable (or read protected)
    wherever it is mapped.

    Both the MMIO entries of the boot memory map and the MMIO descriptors of
    the physical address space map are checked.
    """

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.MmioIsXp"
    description = "MMIO Regions are EFI_MEMORY_XP"
    priority = 50

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        memory_space_map = self.context.memory_space_map()
        memory_map = self.context.memory_map()
        table = self.context.page_table()

        regions = [
            (entry.base, entry.length)
            for entry in memory_map.of_type(constants.MemoryType.EfiMemoryMappedIO)
        ]
        regions += [
            (descriptor.base, descriptor.length)
            for descriptor in memory_space_map
            if descriptor.type == constants.GcdMemoryType.MemoryMappedIo
        ]

        for base, length in regions:
            if not validator.validate_region(
                table,
                base,
                length,
                constants.Attribute.RP | constants.Attribute.XP,
                constants.MatchMode.ANY,
                allow_unmapped=True,
                log_mismatch=True,
                sink=verdict,
            ):
                verdict.passed = False
