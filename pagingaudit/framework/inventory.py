# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The platform's memory inventory: the boot memory map and the physical
address space map."""
import logging
from typing import Iterator, List, Optional, Tuple

from pagingaudit.framework import constants, exceptions, interfaces

vollog = logging.getLogger(__name__)


class MemoryMap:
    """A growable buffer holding the boot memory map, sorted by base address.

    Uses the same size-then-fill protocol as
    :class:`~pagingaudit.framework.layers.flat.RangeTable`, but is sized in
    descriptors rather than pages.
    """

    def __init__(self, producer: interfaces.producers.MemoryMapProducerInterface) -> None:
        self._producer = producer
        self._buffer: Optional[List[Optional[interfaces.producers.MemoryMapEntry]]] = None
        self._size = 0
        self._entries: List[interfaces.producers.MemoryMapEntry] = []
        self._populated = False

    @property
    def populated(self) -> bool:
        return self._populated

    @property
    def size(self) -> int:
        """The number of descriptors the buffer can hold."""
        return self._size

    @property
    def entries(self) -> List[interfaces.producers.MemoryMapEntry]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[interfaces.producers.MemoryMapEntry]:
        return iter(self._entries)

    def of_type(self, memory_type: constants.MemoryType) -> Iterator[interfaces.producers.MemoryMapEntry]:
        return (entry for entry in self._entries if entry.type == memory_type)

    def free(self) -> None:
        self._buffer = None
        self._entries = []
        self._populated = False
        self._size = 0

    def ensure_capacity(self) -> None:
        """Grows the buffer to 20% beyond the producer's requirement when it
        is too small to hold the memory map."""
        try:
            self._producer.get_memory_map([])
        except exceptions.BufferTooSmallException as excp:
            required = excp.required
        else:
            raise exceptions.PopulationException(
                "Failed to get the required memory map size"
            )

        if required >= self._size:
            self.free()
            size = required + (required // constants.GROWTH_DIVISOR)
            try:
                self._buffer = [None] * size
            except MemoryError as excp:
                raise exceptions.ResourceExhaustionException(
                    f"Failed to allocate {size} descriptors for the memory map"
                ) from excp
            self._size = size

    def populate(self) -> None:
        """Fills the buffer from the producer and sorts it by base address."""
        if not self._buffer or self._size == 0:
            raise exceptions.AllocationTooSmallException(
                "No storage allocated for the memory map"
            )
        self._buffer[:] = [None] * self._size
        try:
            written = self._producer.get_memory_map(self._buffer)
        except exceptions.BufferTooSmallException as excp:
            raise exceptions.ResourceExhaustionException(
                f"The memory map needs {excp.required} descriptors but only {self._size} fit"
            ) from excp
        self._entries = sort_memory_map(self._buffer[:written])
        self._populated = True
        vollog.debug(f"Populated the memory map with {written} descriptors")


def sort_memory_map(
    entries: List[Optional[interfaces.producers.MemoryMapEntry]],
) -> List[interfaces.producers.MemoryMapEntry]:
    return sorted((entry for entry in entries if entry is not None), key=lambda x: x.base)


def sort_memory_space_map(
    descriptors: List[interfaces.producers.AddressSpaceDescriptor],
) -> List[interfaces.producers.AddressSpaceDescriptor]:
    return sorted(descriptors, key=lambda x: x.base)


def address_space_bounds(
    descriptors: List[interfaces.producers.AddressSpaceDescriptor],
) -> Optional[Tuple[int, int]]:
    """Returns the (start, end) of the address space a sorted descriptor list describes."""
    if not descriptors:
        return None
    return descriptors[0].base, descriptors[-1].end
