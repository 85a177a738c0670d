# This file is used to augment the test configuration

import copy
import struct
from typing import List, Optional

import pytest

from pagingaudit.framework import constants, contexts, exceptions, interfaces
from pagingaudit.framework.interfaces import producers

PRESENT = 1 << 0
WRITABLE = 1 << 1
LARGE = 1 << 7
NO_EXECUTE = 1 << 63


class FakePlatform(producers.PlatformSourceInterface):
    """An in-memory platform, any source left as None is unavailable."""

    def __init__(
        self,
        page_table: Optional[List[producers.RangeEntry]] = None,
        memory_map: Optional[List[producers.MemoryMapEntry]] = None,
        memory_space_map: Optional[List[producers.AddressSpaceDescriptor]] = None,
        special_regions: Optional[List[producers.SpecialRegion]] = None,
        non_protected_images: Optional[List[producers.AddressRange]] = None,
        loaded_images: Optional[List[producers.LoadedImage]] = None,
        boot_stack: Optional[producers.AddressRange] = None,
        memory_attribute_protocol: bool = True,
        architecture: str = "x64",
    ) -> None:
        self.page_table = page_table
        self.memory_map = memory_map
        self.memory_space_map = memory_space_map
        self.special_regions = special_regions
        self.non_protected_images = non_protected_images
        self.loaded_images = loaded_images
        self.boot_stack = boot_stack
        self.memory_attribute_protocol = memory_attribute_protocol
        self._architecture = architecture
        self.fill_calls = 0

    @property
    def architecture(self) -> str:
        return self._architecture

    def fill(self, buffer):
        self.fill_calls += 1
        if self.page_table is None:
            raise exceptions.ProducerUnavailableException("page table")
        return producers.fill_buffer(buffer, self.page_table)

    def get_memory_map(self, buffer):
        if self.memory_map is None:
            raise exceptions.ProducerUnavailableException("memory map")
        return producers.fill_buffer(buffer, self.memory_map)

    def get_memory_space_map(self):
        if self.memory_space_map is None:
            raise exceptions.ProducerUnavailableException("memory space map")
        return list(self.memory_space_map)

    def get_special_regions(self):
        if self.special_regions is None:
            raise exceptions.ProducerUnavailableException("special regions")
        return list(self.special_regions)

    def get_non_protected_images(self):
        if self.non_protected_images is None:
            raise exceptions.ProducerUnavailableException("non-protected images")
        return list(self.non_protected_images)

    def enumerate_loaded_images(self):
        if self.loaded_images is None:
            raise exceptions.ProducerUnavailableException("loaded images")
        return list(self.loaded_images)

    def get_boot_stack_range(self):
        return self.boot_stack

    def has_memory_attribute_interface(self):
        return self.memory_attribute_protocol


@pytest.fixture
def fake_platform():
    return FakePlatform


@pytest.fixture
def make_context():
    """Returns a factory building audit contexts over a fake platform."""
    made = []

    def _make(**kwargs) -> contexts.AuditContext:
        context = contexts.AuditContext(FakePlatform(**kwargs))
        made.append(context)
        return context

    yield _make
    for context in made:
        context.release()


@pytest.fixture
def run_check():
    """Runs a single check class against a context and returns its verdict."""

    def _run(check, context) -> interfaces.checks.AuditVerdict:
        return check(context).run()

    return _run


_GOOD_SNAPSHOT = {
    "metadata": {"format": "1.0.0", "architecture": "x64"},
    "page_table": [
        {"base": "0x100000", "length": "0x1000", "attributes": ["XP", "RO"]},
        {"base": "0x101000", "length": "0x1000", "attributes": ["RO"]},
        {"base": "0x102000", "length": "0x1000", "attributes": ["XP"]},
        {"base": "0x200000", "length": "0x1000", "attributes": ["RP", "XP"]},
        {"base": "0x201000", "length": "0x3000", "attributes": ["XP"]},
        {"base": "0x300000", "length": "0x100000", "attributes": "0x4000"},
    ],
    "memory_map": [
        {"type": "EfiBootServicesCode", "base": "0x100000", "pages": 3},
        {"type": "EfiBootServicesData", "base": "0x200000", "pages": 4},
        {"type": "EfiBootServicesData", "base": "0x300000", "pages": "0x100"},
        {"type": "EfiConventionalMemory", "base": "0x400000", "pages": "0x100"},
        {"type": "EfiMemoryMappedIO", "base": "0xfed00000", "pages": 1},
    ],
    "memory_space_map": [
        {"type": "SystemMemory", "base": "0x0", "length": "0x1000000"},
        {"type": "MemoryMappedIo", "base": "0xfed00000", "length": "0x1000"},
    ],
    "special_regions": [],
    "non_protected_images": [],
    "loaded_images": [
        {
            "name": "DxeCore.pdb",
            "base": "0x100000",
            "size": "0x3000",
            "code_type": "EfiBootServicesCode",
            "section_alignment": "0x1000",
            "sections": [
                {
                    "name": ".text",
                    "virtual_address": "0x1000",
                    "raw_size": "0x800",
                    "characteristics": "0x60000020",
                },
                {
                    "name": ".data",
                    "virtual_address": "0x2000",
                    "raw_size": "0x1000",
                    "characteristics": "0xc0000040",
                },
            ],
        }
    ],
    "boot_stack": {"base": "0x200000", "length": "0x4000"},
    "memory_attribute_protocol": True,
}


@pytest.fixture
def good_snapshot():
    """A snapshot of a platform that satisfies every check."""
    return copy.deepcopy(_GOOD_SNAPSHOT)


def build_page_tables():
    """Builds 4 level page tables at physical address zero.

    Returns the physical memory image and the flat table it describes.
    """
    memory = bytearray(0x6000)

    def entry(table: int, index: int, value: int) -> None:
        struct.pack_into("<Q", memory, table + index * 8, value)

    # PML4
    entry(0x0000, 0, 0x1000 | PRESENT | WRITABLE)
    entry(0x0000, 256, 0x4000 | PRESENT)
    # PDPT: a 1GB no-execute page at 1GB
    entry(0x1000, 0, 0x2000 | PRESENT | WRITABLE)
    entry(0x1000, 1, 0x40000000 | PRESENT | WRITABLE | LARGE | NO_EXECUTE)
    # PD: a read only, executable 2MB page at 2MB
    entry(0x2000, 0, 0x3000 | PRESENT | WRITABLE)
    entry(0x2000, 1, 0x200000 | PRESENT | LARGE)
    # PT
    for index in range(4):
        entry(0x3000, index, (index << 12) | PRESENT | WRITABLE | NO_EXECUTE)
    entry(0x3000, 4, 0x4000 | PRESENT)
    entry(0x3000, 6, 0x6000 | PRESENT | WRITABLE | NO_EXECUTE)
    # Upper half, read only through the PML4 and no-execute through the PDPT
    entry(0x4000, 0, 0x5000 | PRESENT | WRITABLE | NO_EXECUTE)
    entry(0x5000, 0, 0x0 | PRESENT | WRITABLE | LARGE)

    RO = constants.Attribute.RO
    XP = constants.Attribute.XP
    expected = [
        producers.RangeEntry(0x0, 0x4000, XP),
        producers.RangeEntry(0x4000, 0x1000, RO),
        producers.RangeEntry(0x6000, 0x1000, XP),
        producers.RangeEntry(0x200000, 0x200000, RO),
        producers.RangeEntry(0x40000000, 0x40000000, XP),
        producers.RangeEntry(0xFFFF800000000000, 0x200000, RO | XP),
    ]
    return bytes(memory), expected


@pytest.fixture
def page_table_image():
    return build_page_tables()


def build_pe_image(sections=None, pdb_name: Optional[bytes] = b"Test.pdb") -> bytes:
    """Builds a minimal PE32+ image with a CodeView debug entry in its data
    section."""
    if sections is None:
        sections = [
            (b".text", 0x1000, 0x200, 0x60000020),
            (b".data", 0x2000, 0x200, 0xC0000040),
        ]
    file_alignment = 0x200
    headers_size = 0x400
    data = bytearray(headers_size + file_alignment * len(sections))

    # DOS header
    data[0:2] = b"MZ"
    struct.pack_into("<I", data, 0x3C, 0x40)
    data[0x40:0x44] = b"PE\x00\x00"
    # File header
    struct.pack_into("<HHIIIHH", data, 0x44, 0x8664, len(sections), 0, 0, 0, 0xF0, 0x22)

    # Optional header
    directories = [(0, 0)] * 16
    debug_rva = 0x2000
    if pdb_name is not None:
        directories[6] = (debug_rva, 28)
    struct.pack_into(
        "<HBBIIIIIQIIHHHHHHIIIIHHQQQQII",
        data,
        0x58,
        0x20B,
        14,
        0,
        0x200,
        0x200,
        0,
        0x1000,
        0x1000,
        0x180000000,
        0x1000,
        file_alignment,
        6,
        0,
        0,
        0,
        6,
        0,
        0,
        0x1000 + 0x1000 * len(sections),
        headers_size,
        0,
        10,
        0,
        0x100000,
        0x1000,
        0x100000,
        0x1000,
        0,
        16,
    )
    for index, (rva, size) in enumerate(directories):
        struct.pack_into("<II", data, 0x58 + 112 + index * 8, rva, size)

    # Section headers
    for index, (name, virtual_address, raw_size, characteristics) in enumerate(sections):
        struct.pack_into(
            "<8sIIIIIIHHI",
            data,
            0x58 + 0xF0 + index * 40,
            name,
            raw_size,
            virtual_address,
            raw_size,
            headers_size + index * file_alignment,
            0,
            0,
            0,
            0,
            characteristics,
        )

    if pdb_name is not None:
        # The debug directory and its CodeView record live at the start of the second section
        debug_offset = headers_size + file_alignment
        codeview = b"RSDS" + b"\x11" * 16 + struct.pack("<I", 1) + pdb_name + b"\x00"
        struct.pack_into(
            "<IIHHIIII",
            data,
            debug_offset,
            0,
            0,
            0,
            0,
            2,
            len(codeview),
            debug_rva + 0x20,
            debug_offset + 0x20,
        )
        data[debug_offset + 0x20 : debug_offset + 0x20 + len(codeview)] = codeview

    return bytes(data)


@pytest.fixture
def pe_image():
    return build_pe_image()


@pytest.fixture
def pe_builder():
    return build_pe_image
