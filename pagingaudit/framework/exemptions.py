# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Allow-lists of ranges that may legitimately be readable, writable and executable.

Three independent sources contribute exemptions: the special regions the
platform declares, the images excluded from code protection, and the parts
of the physical address space that do not exist.  A range is only exempt
when one exemption contains it completely.
"""
import dataclasses
import enum
import logging
from typing import Iterable, List, Optional

from pagingaudit.framework import constants, interfaces

vollog = logging.getLogger(__name__)


def subsumes(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Returns whether the interval [a_start, a_end) contains [b_start, b_end)."""
    return a_start <= b_start and a_end >= b_end


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Returns whether the intervals [a_start, a_end) and [b_start, b_end)
    share at least one address.

    Empty intervals never overlap anything.
    """
    return (
        a_end > a_start
        and b_end > b_start
        and (
            (a_start <= b_start and a_end > b_start)
            or (b_start <= a_start and b_end > a_start)
        )
    )


class ExemptionKind(enum.Enum):
    SPECIAL_REGION = "special region"
    NON_PROTECTED_IMAGE = "non-protected image"
    NON_EXISTENT = "non-existent address space"


@dataclasses.dataclass(frozen=True)
class ExemptionEntry:
    base: int
    length: int
    kind: ExemptionKind
    required_attributes: int = 0

    @property
    def end(self) -> int:
        return self.base + self.length

    def covers(self, address: int, length: int) -> bool:
        return subsumes(self.base, self.end, address, address + length)


class ExemptionSets:
    """The three exemption lists and the predicate that consults them.

    A list that could not be obtained is kept as None so that it can be
    told apart from a source that legitimately exempts nothing.
    """

    def __init__(
        self,
        special_regions: Optional[Iterable[interfaces.producers.SpecialRegion]] = None,
        non_protected_images: Optional[Iterable[interfaces.producers.AddressRange]] = None,
        memory_space_map: Optional[
            Iterable[interfaces.producers.AddressSpaceDescriptor]
        ] = None,
    ) -> None:
        self.special_regions: Optional[List[ExemptionEntry]] = None
        self.non_protected_images: Optional[List[ExemptionEntry]] = None
        self.non_existent: Optional[List[ExemptionEntry]] = None

        if special_regions is not None:
            self.special_regions = [
                ExemptionEntry(
                    region.base,
                    region.length,
                    ExemptionKind.SPECIAL_REGION,
                    region.attributes,
                )
                for region in special_regions
            ]
        if non_protected_images is not None:
            self.non_protected_images = [
                ExemptionEntry(image.base, image.length, ExemptionKind.NON_PROTECTED_IMAGE)
                for image in non_protected_images
            ]
        if memory_space_map is not None:
            self.non_existent = [
                ExemptionEntry(
                    descriptor.base, descriptor.length, ExemptionKind.NON_EXISTENT
                )
                for descriptor in memory_space_map
                if descriptor.type == constants.GcdMemoryType.NonExistent
            ]

    @property
    def populated(self) -> bool:
        return any(
            source is not None
            for source in (
                self.special_regions,
                self.non_protected_images,
                self.non_existent,
            )
        )

    def __iter__(self):
        for source in (self.special_regions, self.non_protected_images, self.non_existent):
            yield from source or []

    def is_rwx_permitted(self, address: int, length: int) -> bool:
        """Checks if a region is allowed to be read/write/execute.

        Args:
            address: Start address of the region
            length: Length of the region

        Returns:
            True if a single exemption fully contains the region
        """
        if not self.populated:
            return False

        for exemption in self:
            if exemption.kind == ExemptionKind.SPECIAL_REGION and exemption.required_attributes:
                continue
            if exemption.covers(address, length):
                vollog.log(
                    constants.LOGLEVEL_V,
                    f"Region 0x{address:x}-0x{address + length:x} exempted by {exemption.kind.value} "
                    f"0x{exemption.base:x}-0x{exemption.end:x}",
                )
                return True

        for exemption in self:
            if overlaps(exemption.base, exemption.end, address, address + length):
                vollog.debug(
                    f"Region 0x{address:x}-0x{address + length:x} is only partially covered by "
                    f"{exemption.kind.value} 0x{exemption.base:x}-0x{exemption.end:x}"
                )
        return False
