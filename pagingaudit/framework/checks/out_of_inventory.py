# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging
from typing import Iterator, List, Tuple

from pagingaudit.framework import constants, exceptions, interfaces, inventory, validator

vollog = logging.getLogger(__name__)


def memory_map_gaps(
    memory_map: List[interfaces.producers.MemoryMapEntry],
    start_of_address_space: int,
    end_of_address_space: int,
) -> Iterator[Tuple[int, int]]:
    """Yields the (start, end) of every range not described by the sorted
    memory map, within the bounds of the address space."""
    if not memory_map:
        return

    first = memory_map[0]
    if first.base > start_of_address_space:
        yield start_of_address_space, first.base

    last_end = first.end
    for entry in memory_map[1:]:
        if entry.base > last_end:
            yield last_end, entry.base
        last_end = entry.end

    if last_end < end_of_address_space:
        yield last_end, end_of_address_space


class MemoryOutsideMemoryMapIsInaccessible(interfaces.checks.CheckInterface):
    """Verifies that physical memory the boot memory map does not describe is
    read protected or not mapped."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.MemoryOutsideEfiMemoryMapIsInaccessible"
    description = "Memory outside of the EFI Memory Map is inaccessible"
    priority = 80

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        memory_space_map = self.context.memory_space_map()
        memory_map = self.context.memory_map()
        table = self.context.page_table()

        bounds = inventory.address_space_bounds(memory_space_map)
        if bounds is None:
            raise exceptions.ProducerUnavailableException(
                "memory space map", "The memory space map is empty"
            )
        if not len(memory_map):
            raise exceptions.ProducerUnavailableException(
                "memory map", "The memory map is empty"
            )

        for start, end in memory_map_gaps(memory_map.entries, *bounds):
            vollog.log(
                constants.LOGLEVEL_V,
                f"Checking range 0x{start:x}-0x{end:x} outside the memory map",
            )
            if not validator.validate_region(
                table,
                start,
                end - start,
                constants.Attribute.RP,
                constants.MatchMode.ANY,
                allow_unmapped=True,
                log_mismatch=True,
                sink=verdict,
            ):
                verdict.passed = False
