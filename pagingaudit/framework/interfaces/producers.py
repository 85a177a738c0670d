# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Defines the platform data sources an audit consumes.

Each producer captures one view of the platform (the flattened translation
structure, the boot memory map, the physical address space map, the
exemption data, the loaded images and a few platform facts).  Producers
are point in time snapshots: the audit invokes them synchronously and
caches what they return for the remainder of the run.

A producer that cannot provide its data at all raises
:class:`~pagingaudit.framework.exceptions.ProducerUnavailableException`.
"""
import dataclasses
from abc import ABCMeta, abstractmethod
from typing import List, Optional, Sequence

from pagingaudit.framework import constants, exceptions


@dataclasses.dataclass(frozen=True)
class RangeEntry:
    """A single flat table record: a linear range and its access attributes."""

    base: int
    length: int
    attributes: int = 0

    @property
    def end(self) -> int:
        return self.base + self.length

    @property
    def readable(self) -> bool:
        return not self.attributes & constants.Attribute.RP

    @property
    def writable(self) -> bool:
        return not self.attributes & constants.Attribute.RO

    @property
    def executable(self) -> bool:
        return not self.attributes & constants.Attribute.XP


@dataclasses.dataclass(frozen=True)
class MemoryMapEntry:
    """A boot memory map descriptor."""

    type: int
    base: int
    pages: int
    attribute: int = 0

    @property
    def length(self) -> int:
        return self.pages * constants.PAGE_SIZE

    @property
    def end(self) -> int:
        return self.base + self.length


@dataclasses.dataclass(frozen=True)
class AddressSpaceDescriptor:
    """A physical address space descriptor."""

    type: int
    base: int
    length: int
    capabilities: int = 0
    attributes: int = 0

    @property
    def end(self) -> int:
        return self.base + self.length


@dataclasses.dataclass(frozen=True)
class SpecialRegion:
    """A range the platform declares as exempt from the standard protections.

    Regions carrying required attributes are only exempt for those
    attributes, regions without any are exempt altogether.
    """

    base: int
    length: int
    attributes: int = 0


@dataclasses.dataclass(frozen=True)
class AddressRange:
    """A plain linear range, such as an image excluded from code protection or the boot stack."""

    base: int
    length: int


@dataclasses.dataclass(frozen=True)
class ImageSection:
    """A pre-parsed executable section header."""

    name: str
    virtual_address: int
    raw_size: int
    characteristics: int


@dataclasses.dataclass(frozen=True)
class LoadedImage:
    """A loaded executable image and its section layout."""

    name: Optional[str]
    base: int
    size: int
    code_type: int
    section_alignment: int
    sections: List[ImageSection] = dataclasses.field(default_factory=list)

    @property
    def end(self) -> int:
        return self.base + self.size


class RangeTableProducerInterface(metaclass=ABCMeta):
    """Produces the flat range table from the platform's translation structure."""

    @abstractmethod
    def fill(self, buffer: List[Optional[RangeEntry]]) -> int:
        """Writes the sorted flat table entries into buffer.

        Args:
            buffer: A preallocated list whose length is the capacity available

        Returns:
            The number of entries written

        Raises:
            BufferTooSmallException: When the buffer cannot hold every entry, carrying the required count
        """


class MemoryMapProducerInterface(metaclass=ABCMeta):
    """Produces the boot memory map."""

    @abstractmethod
    def get_memory_map(self, buffer: List[Optional[MemoryMapEntry]]) -> int:
        """Writes the memory map descriptors into buffer, using the same
        size-then-fill protocol as :meth:`RangeTableProducerInterface.fill`."""


class AddressSpaceProducerInterface(metaclass=ABCMeta):
    """Produces the physical address space map."""

    @abstractmethod
    def get_memory_space_map(self) -> List[AddressSpaceDescriptor]:
        """Returns the physical address space descriptors."""


class ExemptionProducerInterface(metaclass=ABCMeta):
    """Produces the data that exempts ranges from the protection rules."""

    @abstractmethod
    def get_special_regions(self) -> List[SpecialRegion]:
        """Returns the declared special regions."""

    @abstractmethod
    def get_non_protected_images(self) -> List[AddressRange]:
        """Returns the ranges of images excluded from code protection."""


class ImageProducerInterface(metaclass=ABCMeta):
    """Enumerates the loaded executable images."""

    @abstractmethod
    def enumerate_loaded_images(self) -> List[LoadedImage]:
        """Returns every loaded image with its pre-parsed sections."""


class PlatformInterface(metaclass=ABCMeta):
    """Answers the remaining questions about the platform."""

    @property
    def architecture(self) -> str:
        return constants.DEFAULT_ARCHITECTURE

    @abstractmethod
    def get_boot_stack_range(self) -> Optional[AddressRange]:
        """Returns the range allocated to the boot processor stack, if it is recorded."""

    @abstractmethod
    def has_memory_attribute_interface(self) -> bool:
        """Returns whether the platform can query and set memory attributes."""


class PlatformSourceInterface(
    RangeTableProducerInterface,
    MemoryMapProducerInterface,
    AddressSpaceProducerInterface,
    ExemptionProducerInterface,
    ImageProducerInterface,
    PlatformInterface,
    metaclass=ABCMeta,
):
    """A single source able to answer every question an audit asks."""


def fill_buffer(buffer: List, items: Sequence) -> int:
    """Copies items into the front of a caller allocated buffer.

    Raises:
        BufferTooSmallException: If buffer is shorter than items, carrying len(items)
    """
    if len(buffer) < len(items):
        raise exceptions.BufferTooSmallException(len(items))
    buffer[: len(items)] = items
    return len(items)
