# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Flattens raw Intel 64-bit page tables into a flat range table.

The walkers read the translation structures from a physical data layer,
starting at the page map offset (the value of CR3), and produce one flat
table entry per contiguous run of present leaves sharing the same access
attributes.
"""
import functools
import logging
import struct
from typing import Iterable, List, Optional, Tuple

from pagingaudit import classproperty
from pagingaudit.framework import constants, exceptions, interfaces

vollog = logging.getLogger(__name__)

INTEL_TRANSLATION_DEBUGGING = False


class Intel32eFlattener(interfaces.producers.RangeTableProducerInterface):
    """Flattens 4 level (48 bit) Intel 64-bit page tables."""

    _entry_format = "<Q"
    _page_size_in_bits = 12
    _bits_per_register = 64
    # NOTE: _maxphyaddr is MAXPHYADDR as defined in the Intel specs *NOT* the maximum physical address
    _maxphyaddr = 52
    _maxvirtaddr = 48
    _structure = [
        ("page map layer 4", 9, False),
        ("page directory pointer", 9, True),
        ("page directory", 9, True),
        ("page table", 9, True),
    ]

    def __init__(
        self,
        memory_layer: interfaces.layers.DataLayerInterface,
        page_map_offset: int,
        name: Optional[str] = None,
    ) -> None:
        self._base_layer = memory_layer
        self._page_map_offset = self._mask(
            page_map_offset, self._maxphyaddr - 1, self._page_size_in_bits
        )
        self._name = name or f"{self.__class__.__name__}({memory_layer.name})"
        self._entry_size = struct.calcsize(self._entry_format)
        self._entry_number = self.page_size // self._entry_size
        self._canonical_prefix = self._mask(
            (1 << self._bits_per_register) - 1,
            self._bits_per_register - 1,
            self._maxvirtaddr,
        )
        self._flattened: Optional[List[interfaces.producers.RangeEntry]] = None

    @classproperty
    def page_size(cls) -> int:
        """Page size for the intel memory layers.

        All Intel layers work on 4096 byte pages
        """
        return 1 << cls._page_size_in_bits

    @classproperty
    def maximum_address(cls) -> int:
        return (1 << cls._maxvirtaddr) - 1

    @classproperty
    def structure(cls) -> List[Tuple[str, int, bool]]:
        return cls._structure

    @property
    def name(self) -> str:
        return self._name

    @staticmethod
    def _mask(value: int, high_bit: int, low_bit: int) -> int:
        """Returns the bits of a value between highbit and lowbit inclusive."""
        high_mask = (1 << (high_bit + 1)) - 1
        low_mask = (1 << low_bit) - 1
        mask = high_mask ^ low_mask
        return value & mask

    @staticmethod
    def _page_is_valid(entry: int) -> bool:
        """Returns whether a particular page is valid based on its entry."""
        return bool(entry & 1)

    @staticmethod
    def _page_is_writable(entry: int) -> bool:
        return bool(entry & (1 << 1))

    @staticmethod
    def _page_is_large(entry: int) -> bool:
        return bool(entry & (1 << 7))

    @staticmethod
    def _page_is_no_execute(entry: int) -> bool:
        return bool(entry & (1 << 63))

    def canonicalize(self, addr: int) -> int:
        """Canonicalizes an address by performing an appropiate sign extension on the higher addresses"""
        if addr < (1 << (self._maxvirtaddr - 1)):
            return addr
        return self._mask(addr, self._maxvirtaddr - 1, 0) | self._canonical_prefix

    @functools.lru_cache(1025)
    def _get_table(self, base_address: int) -> bytes:
        """Reads a whole translation table from the physical layer."""
        return self._base_layer.read(base_address, self.page_size)

    def _walk(
        self,
        table_address: int,
        level: int,
        position: int,
        virtual_base: int,
        writable: bool,
        no_execute: bool,
    ) -> Iterable[Tuple[int, int, int]]:
        """Yields (offset, size, attributes) for every present leaf below a table."""
        name, size, large_page = self._structure[level]
        position -= size
        try:
            table = self._get_table(table_address)
        except exceptions.InvalidAddressException as excp:
            raise exceptions.PagedInvalidAddressException(
                self.name,
                self.canonicalize(virtual_base),
                position + size + 1,
                table_address,
                f"Unable to read {name} at 0x{table_address:x}: {excp}",
            ) from excp

        for index in range(self._entry_number):
            (entry,) = struct.unpack(
                self._entry_format,
                table[index * self._entry_size : (index + 1) * self._entry_size],
            )
            if not self._page_is_valid(entry):
                continue
            offset = virtual_base | (index << (position + 1))
            entry_writable = writable and self._page_is_writable(entry)
            entry_no_execute = no_execute or self._page_is_no_execute(entry)

            if INTEL_TRANSLATION_DEBUGGING:
                vollog.log(
                    constants.LOGLEVEL_VVVV,
                    f"Entry {hex(entry)} at index {hex(index)} in {name} maps {hex(offset)}",
                )

            if level == len(self._structure) - 1 or (
                large_page and self._page_is_large(entry)
            ):
                attributes = constants.Attribute.NONE
                if not entry_writable:
                    attributes |= constants.Attribute.RO
                if entry_no_execute:
                    attributes |= constants.Attribute.XP
                yield self.canonicalize(offset), 1 << (position + 1), int(attributes)
            else:
                yield from self._walk(
                    self._mask(entry, self._maxphyaddr - 1, self._page_size_in_bits),
                    level + 1,
                    position,
                    offset,
                    entry_writable,
                    entry_no_execute,
                )

    def mapping(self) -> Iterable[interfaces.producers.RangeEntry]:
        """Returns the sorted, coalesced flat table entries for the whole
        address space."""
        stashed_offset = stashed_size = stashed_attributes = None
        for offset, size, attributes in self._walk(
            self._page_map_offset, 0, self._maxvirtaddr - 1, 0, True, False
        ):
            if (
                stashed_offset is None
                or stashed_offset + stashed_size != offset
                or stashed_attributes != attributes
            ):
                # The block isn't contiguous
                if stashed_offset is not None:
                    yield interfaces.producers.RangeEntry(
                        stashed_offset, stashed_size, stashed_attributes
                    )
                stashed_offset = offset
                stashed_size = size
                stashed_attributes = attributes
            else:
                stashed_size += size
        # Yield whatever's left
        if stashed_offset is not None:
            yield interfaces.producers.RangeEntry(
                stashed_offset, stashed_size, stashed_attributes
            )

    def fill(self, buffer: List[Optional[interfaces.producers.RangeEntry]]) -> int:
        if self._flattened is None:
            self._flattened = list(self.mapping())
            vollog.debug(
                f"Flattened {self.name} at 0x{self._page_map_offset:x} into {len(self._flattened)} entries"
            )
        return interfaces.producers.fill_buffer(buffer, self._flattened)


class Intel5LevelFlattener(Intel32eFlattener):
    """Flattens 5 level (57 bit) Intel 64-bit page tables."""

    _maxvirtaddr = 57
    _structure = [
        ("page map layer 5", 9, False),
        ("page map layer 4", 9, False),
        ("page directory pointer", 9, True),
        ("page directory", 9, True),
        ("page table", 9, True),
    ]


def flattener_for_levels(levels: int):
    """Returns the flattener class handling tables of the given depth."""
    for cls in (Intel32eFlattener, Intel5LevelFlattener):
        if len(cls._structure) == levels:
            return cls
    raise ValueError(f"Unsupported number of paging levels: {levels}")
