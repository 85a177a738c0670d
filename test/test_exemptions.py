import pytest

from pagingaudit.framework import constants, exemptions
from pagingaudit.framework.interfaces.producers import (
    AddressRange,
    AddressSpaceDescriptor,
    SpecialRegion,
)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0, 100), (50, 150), False),
        ((0, 100), (0, 100), True),
        ((0, 100), (10, 20), True),
        ((0, 100), (50, 50), True),
        ((50, 150), (0, 100), False),
    ],
)
def test_subsumes(a, b, expected):
    assert exemptions.subsumes(*a, *b) == expected


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((0, 100), (50, 150), True),
        ((50, 150), (0, 100), True),
        ((0, 100), (100, 200), False),
        ((0, 0), (0, 10), False),
        ((5, 5), (0, 10), False),
    ],
)
def test_overlaps(a, b, expected):
    assert exemptions.overlaps(*a, *b) == expected


def test_partial_cover_is_not_exempt():
    allowed = exemptions.ExemptionSets(special_regions=[SpecialRegion(0, 100)])
    assert not allowed.is_rwx_permitted(50, 100)
    assert allowed.is_rwx_permitted(0, 100)


def test_nothing_is_exempt_without_sources():
    allowed = exemptions.ExemptionSets()
    assert not allowed.populated
    assert not allowed.is_rwx_permitted(0, 0x1000)


def test_empty_source_counts_as_populated():
    allowed = exemptions.ExemptionSets(special_regions=[])
    assert allowed.populated
    assert not allowed.is_rwx_permitted(0, 0x1000)


def test_special_region_with_attributes_is_not_exempt():
    allowed = exemptions.ExemptionSets(
        special_regions=[SpecialRegion(0x1000, 0x1000, constants.Attribute.XP)]
    )
    assert not allowed.is_rwx_permitted(0x1000, 0x1000)


def test_non_protected_image_is_exempt():
    allowed = exemptions.ExemptionSets(non_protected_images=[AddressRange(0x10000, 0x4000)])
    assert allowed.is_rwx_permitted(0x11000, 0x1000)
    assert not allowed.is_rwx_permitted(0x13000, 0x2000)


def test_only_non_existent_address_space_is_exempt():
    allowed = exemptions.ExemptionSets(
        memory_space_map=[
            AddressSpaceDescriptor(constants.GcdMemoryType.SystemMemory, 0x0, 0x100000),
            AddressSpaceDescriptor(constants.GcdMemoryType.NonExistent, 0x100000, 0x100000),
        ]
    )
    assert allowed.is_rwx_permitted(0x100000, 0x1000)
    assert not allowed.is_rwx_permitted(0x0, 0x1000)
