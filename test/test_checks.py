import pytest

from pagingaudit import framework
from pagingaudit.framework import checks, constants
from pagingaudit.framework.checks import (
    attribute_protocol,
    image_sections,
    mmio,
    no_rwx,
    null_page,
    out_of_inventory,
    stack,
    unallocated,
)
from pagingaudit.framework.interfaces.producers import (
    AddressRange,
    AddressSpaceDescriptor,
    ImageSection,
    LoadedImage,
    MemoryMapEntry,
    RangeEntry,
    SpecialRegion,
)

RP = constants.Attribute.RP
XP = constants.Attribute.XP
RO = constants.Attribute.RO
MemoryType = constants.MemoryType
GcdMemoryType = constants.GcdMemoryType
Characteristics = constants.SectionCharacteristics

SYSTEM_MEMORY = [AddressSpaceDescriptor(GcdMemoryType.SystemMemory, 0x0, 0x100000000)]

TEXT = Characteristics.CNT_CODE | Characteristics.MEM_EXECUTE | Characteristics.MEM_READ
DATA = Characteristics.CNT_INITIALIZED_DATA | Characteristics.MEM_READ | Characteristics.MEM_WRITE


def ranges(verdict):
    return [(d.range_start, d.range_end) for d in verdict.diagnostics]


# NoReadWriteExecute


def test_rwx_region_in_special_region_passes(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, 0)],
        special_regions=[SpecialRegion(0x1000, 0x1000)],
        memory_space_map=SYSTEM_MEMORY,
    )
    assert run_check(no_rwx.NoReadWriteExecute, context).passed


def test_rwx_region_without_exemption_fails(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, 0)],
        special_regions=[],
        memory_space_map=SYSTEM_MEMORY,
    )
    verdict = run_check(no_rwx.NoReadWriteExecute, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x1000, 0x2000)]


def test_protected_regions_need_no_exemption(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, RO), RangeEntry(0x2000, 0x1000, XP)],
        memory_space_map=SYSTEM_MEMORY,
    )
    assert run_check(no_rwx.NoReadWriteExecute, context).passed


def test_rwx_region_in_non_existent_memory_passes(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x100001000, 0x1000, 0)],
        memory_space_map=SYSTEM_MEMORY
        + [AddressSpaceDescriptor(GcdMemoryType.NonExistent, 0x100000000, 0x100000000)],
    )
    assert run_check(no_rwx.NoReadWriteExecute, context).passed


def test_rwx_check_requires_memory_space_map(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, XP)], special_regions=[]
    )
    verdict = run_check(no_rwx.NoReadWriteExecute, context)
    assert not verdict.passed
    assert "aborted" in verdict.diagnostics[0].reason


# UnallocatedMemoryIsRP


def conventional(pages=4):
    return [MemoryMapEntry(MemoryType.EfiConventionalMemory, 0x10000, pages)]


def test_unallocated_memory_read_protected(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x10000, 0x4000, RP | XP)], memory_map=conventional()
    )
    assert run_check(unallocated.UnallocatedMemoryIsRP, context).passed


def test_unallocated_memory_partially_unmapped(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x10000, 0x1000, RP)], memory_map=conventional()
    )
    assert run_check(unallocated.UnallocatedMemoryIsRP, context).passed


def test_unallocated_memory_accessible(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x10000, 0x4000, XP)], memory_map=conventional()
    )
    verdict = run_check(unallocated.UnallocatedMemoryIsRP, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x10000, 0x14000)]


# MemoryAttributeProtocolPresent


@pytest.mark.parametrize("present", [True, False])
def test_memory_attribute_protocol(make_context, run_check, present):
    context = make_context(memory_attribute_protocol=present)
    verdict = run_check(attribute_protocol.MemoryAttributeProtocolPresent, context)
    assert verdict.passed == present


# NullPageIsRP


@pytest.mark.parametrize(
    "entry, expected",
    [
        (RangeEntry(0x0, 0x1000, RP), True),
        (RangeEntry(0x1000, 0x1000, XP), True),
        (RangeEntry(0x0, 0x1000, 0), False),
        (RangeEntry(0x0, 0x2000, XP), False),
    ],
)
def test_null_page(make_context, run_check, entry, expected):
    verdict = run_check(null_page.NullPageIsRP, make_context(page_table=[entry]))
    assert verdict.passed == expected


def test_null_page_reports_range(make_context, run_check):
    verdict = run_check(
        null_page.NullPageIsRP, make_context(page_table=[RangeEntry(0x0, 0x1000, 0)])
    )
    assert ranges(verdict) == [(0x0, 0x1000)]


# MmioIsXP


def mmio_context(make_context, attributes, memory_space_map=SYSTEM_MEMORY):
    return make_context(
        page_table=[RangeEntry(0xFED00000, 0x1000, attributes)],
        memory_map=[MemoryMapEntry(MemoryType.EfiMemoryMappedIO, 0xFED00000, 1)],
        memory_space_map=memory_space_map,
    )


@pytest.mark.parametrize(
    "attributes, expected", [(XP, True), (RP, True), (RO, False), (0, False)]
)
def test_mmio(make_context, run_check, attributes, expected):
    verdict = run_check(mmio.MmioIsXP, mmio_context(make_context, attributes))
    assert verdict.passed == expected


def test_mmio_from_memory_space_map(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0xFEC00000, 0x1000, 0)],
        memory_map=[MemoryMapEntry(MemoryType.EfiBootServicesData, 0x100000, 1)],
        memory_space_map=SYSTEM_MEMORY
        + [AddressSpaceDescriptor(GcdMemoryType.MemoryMappedIo, 0xFEC00000, 0x1000)],
    )
    verdict = run_check(mmio.MmioIsXP, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0xFEC00000, 0xFEC01000)]


def test_unmapped_mmio(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, XP)],
        memory_map=[MemoryMapEntry(MemoryType.EfiMemoryMappedIO, 0xFED00000, 1)],
        memory_space_map=SYSTEM_MEMORY,
    )
    assert run_check(mmio.MmioIsXP, context).passed


# ImageCodeSectionsRoDataSectionsXP


def image(sections, code_type=MemoryType.EfiBootServicesCode, section_alignment=0x1000):
    return LoadedImage(
        name="Test.pdb",
        base=0x100000,
        size=0x3000,
        code_type=code_type,
        section_alignment=section_alignment,
        sections=sections,
    )


GOOD_SECTIONS = [
    ImageSection(".text", 0x1000, 0x800, TEXT),
    ImageSection(".data", 0x2000, 0x1000, DATA),
]

GOOD_MAPPING = [
    RangeEntry(0x100000, 0x1000, XP | RO),
    RangeEntry(0x101000, 0x1000, RO),
    RangeEntry(0x102000, 0x1000, XP),
]


def test_protected_image(make_context, run_check):
    context = make_context(page_table=GOOD_MAPPING, loaded_images=[image(GOOD_SECTIONS)])
    assert run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context).passed


def test_section_with_code_and_data(make_context, run_check):
    context = make_context(
        page_table=GOOD_MAPPING,
        loaded_images=[
            image([ImageSection(".text", 0x1000, 0x1000, TEXT | Characteristics.CNT_INITIALIZED_DATA)])
        ],
    )
    verdict = run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x101000, 0x102000)]
    assert "code and data" in verdict.diagnostics[0].reason


def test_writable_code_section(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x101000, 0x1000, 0), RangeEntry(0x102000, 0x1000, XP)],
        loaded_images=[image(GOOD_SECTIONS)],
    )
    verdict = run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x101000, 0x102000)]


def test_executable_data_section(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x101000, 0x1000, RO), RangeEntry(0x102000, 0x1000, 0)],
        loaded_images=[image(GOOD_SECTIONS)],
    )
    verdict = run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context)
    assert ranges(verdict) == [(0x102000, 0x103000)]


def test_unmapped_section(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x101000, 0x1000, RO)],
        loaded_images=[image(GOOD_SECTIONS)],
    )
    assert not run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context).passed


def test_misaligned_image(make_context, run_check):
    context = make_context(
        page_table=GOOD_MAPPING, loaded_images=[image(GOOD_SECTIONS, section_alignment=0x200)]
    )
    verdict = run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x100000, 0x103000)]


def test_runtime_image_alignment_depends_on_architecture(make_context, run_check):
    runtime_image = image(GOOD_SECTIONS, code_type=MemoryType.EfiRuntimeServicesCode)
    x64 = make_context(page_table=GOOD_MAPPING, loaded_images=[runtime_image])
    aarch64 = make_context(
        page_table=GOOD_MAPPING, loaded_images=[runtime_image], architecture="aarch64"
    )
    assert run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, x64).passed
    assert not run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, aarch64).passed


def test_no_loaded_images(make_context, run_check):
    context = make_context(page_table=GOOD_MAPPING, loaded_images=[])
    assert not run_check(image_sections.ImageCodeSectionsRoDataSectionsXP, context).passed


@pytest.mark.parametrize(
    "alignment, memory_type, architecture, expected",
    [
        (0x1000, MemoryType.EfiBootServicesCode, "x64", True),
        (0x200, MemoryType.EfiBootServicesCode, "x64", False),
        (0x1000, MemoryType.EfiRuntimeServicesCode, "aarch64", False),
        (0x10000, MemoryType.EfiRuntimeServicesCode, "aarch64", True),
        (0x1000, MemoryType.EfiConventionalMemory, "x64", True),
        (0, MemoryType.EfiLoaderCode, "x64", False),
    ],
)
def test_is_section_aligned(alignment, memory_type, architecture, expected):
    assert image_sections.is_section_aligned(alignment, memory_type, architecture) == expected


def test_align_value():
    assert image_sections.align_value(0x800, 0x1000) == 0x1000
    assert image_sections.align_value(0x1000, 0x1000) == 0x1000
    assert image_sections.align_value(0, 0x1000) == 0


# BspStackIsXPAndHasGuardPage

BOOT_STACK = AddressRange(0x200000, 0x4000)


@pytest.mark.parametrize(
    "page_table, expected",
    [
        ([RangeEntry(0x200000, 0x1000, RP | XP), RangeEntry(0x201000, 0x3000, XP)], True),
        ([RangeEntry(0x201000, 0x3000, XP)], True),
        ([RangeEntry(0x200000, 0x4000, XP)], False),
        ([RangeEntry(0x200000, 0x1000, RP), RangeEntry(0x201000, 0x3000, 0)], False),
        ([RangeEntry(0x200000, 0x1000, RP)], False),
    ],
)
def test_boot_stack(make_context, run_check, page_table, expected):
    context = make_context(page_table=page_table, boot_stack=BOOT_STACK)
    verdict = run_check(stack.BspStackIsXPAndHasGuardPage, context)
    assert verdict.passed == expected


def test_boot_stack_without_guard_page_reports_it(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x200000, 0x4000, XP)], boot_stack=BOOT_STACK
    )
    verdict = run_check(stack.BspStackIsXPAndHasGuardPage, context)
    assert ranges(verdict) == [(0x200000, 0x201000)]


def test_unaligned_boot_stack_is_rounded_to_pages(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x200000, 0x1000, RP), RangeEntry(0x201000, 0x2000, XP)],
        boot_stack=AddressRange(0x200800, 0x3000),
    )
    assert run_check(stack.BspStackIsXPAndHasGuardPage, context).passed


def test_missing_boot_stack_is_skipped(make_context, run_check):
    context = make_context(page_table=[RangeEntry(0x1000, 0x1000, XP)])
    assert run_check(stack.BspStackIsXPAndHasGuardPage, context).passed


# MemoryOutsideMemoryMapIsInaccessible

INVENTORY = [
    MemoryMapEntry(MemoryType.EfiConventionalMemory, 0x1000, 1),
    MemoryMapEntry(MemoryType.EfiBootServicesData, 0x4000, 2),
]
SMALL_SPACE = [AddressSpaceDescriptor(GcdMemoryType.SystemMemory, 0x0, 0x10000)]


def test_memory_map_gaps():
    assert list(out_of_inventory.memory_map_gaps(INVENTORY, 0x0, 0x10000)) == [
        (0x0, 0x1000),
        (0x2000, 0x4000),
        (0x6000, 0x10000),
    ]
    assert list(out_of_inventory.memory_map_gaps([], 0x0, 0x10000)) == []


def test_memory_outside_inventory_unmapped(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, XP), RangeEntry(0x4000, 0x2000, XP)],
        memory_map=INVENTORY,
        memory_space_map=SMALL_SPACE,
    )
    assert run_check(out_of_inventory.MemoryOutsideMemoryMapIsInaccessible, context).passed


def test_memory_outside_inventory_accessible(make_context, run_check):
    context = make_context(
        page_table=[
            RangeEntry(0x1000, 0x1000, XP),
            RangeEntry(0x2000, 0x1000, XP),
            RangeEntry(0x4000, 0x2000, XP),
        ],
        memory_map=INVENTORY,
        memory_space_map=SMALL_SPACE,
    )
    verdict = run_check(out_of_inventory.MemoryOutsideMemoryMapIsInaccessible, context)
    assert not verdict.passed
    assert ranges(verdict) == [(0x2000, 0x3000)]


def test_memory_outside_inventory_requires_address_space(make_context, run_check):
    context = make_context(
        page_table=[RangeEntry(0x1000, 0x1000, XP)], memory_map=INVENTORY, memory_space_map=[]
    )
    assert not run_check(out_of_inventory.MemoryOutsideMemoryMapIsInaccessible, context).passed


# Harness


def test_checks_are_listed_in_priority_order():
    framework.import_files(checks, False)
    available = list(framework.list_checks().values())
    assert available == [
        no_rwx.NoReadWriteExecute,
        unallocated.UnallocatedMemoryIsRP,
        attribute_protocol.MemoryAttributeProtocolPresent,
        null_page.NullPageIsRP,
        mmio.MmioIsXP,
        image_sections.ImageCodeSectionsRoDataSectionsXP,
        stack.BspStackIsXPAndHasGuardPage,
        out_of_inventory.MemoryOutsideMemoryMapIsInaccessible,
    ]


def test_aborted_check_does_not_stop_the_run(make_context):
    context = make_context(memory_attribute_protocol=True)
    result = checks.run_checks(context, framework.list_checks().values())
    assert len(result.verdicts) == 8
    assert not result.passed
    passed = [verdict.name for verdict in result.verdicts if verdict.passed]
    assert passed == [attribute_protocol.MemoryAttributeProtocolPresent.test_id]
