# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging

from pagingaudit.framework import constants, interfaces, validator

vollog = logging.getLogger(__name__)


def align_value(value: int, alignment: int) -> int:
    """Rounds value up to the next multiple of alignment (a power of two)."""
    return (value + (alignment - 1)) & ~(alignment - 1)


def is_section_aligned(
    section_alignment: int,
    memory_type: int,
    architecture: str = constants.DEFAULT_ARCHITECTURE,
) -> bool:
    """Returns whether an image's section alignment satisfies the allocation
    granularity of the memory type its code was loaded into.

    Runtime code must be aligned to the runtime allocation granularity of the
    architecture, boot time code to a page.  Any other memory type should
    never hold an image and is checked against the closest match.
    """
    runtime_granularity = constants.RUNTIME_PAGE_ALLOCATION_GRANULARITY.get(
        architecture, constants.PAGE_SIZE
    )
    if memory_type in (
        constants.MemoryType.EfiRuntimeServicesCode,
        constants.MemoryType.EfiACPIMemoryNVS,
    ):
        page_alignment = runtime_granularity
    elif memory_type in (
        constants.MemoryType.EfiRuntimeServicesData,
        constants.MemoryType.EfiACPIReclaimMemory,
    ):
        vollog.warning(f"Unexpected code type {memory_type} for a loaded image")
        page_alignment = runtime_granularity
    elif memory_type in (
        constants.MemoryType.EfiBootServicesCode,
        constants.MemoryType.EfiLoaderCode,
        constants.MemoryType.EfiReservedMemoryType,
    ):
        page_alignment = constants.PAGE_SIZE
    else:
        vollog.warning(f"Unexpected code type {memory_type} for a loaded image")
        page_alignment = constants.PAGE_SIZE

    if section_alignment <= 0:
        return False
    return (section_alignment & (page_alignment - 1)) == 0


class ImageCodeSectionsRoDataSectionsXP(interfaces.checks.CheckInterface):
    """Verifies that the code sections of every loaded image are read only and
    that every other section is non-executable."""

    _required_framework_version = (1, 0, 0)
    _version = (1, 0, 0)

    test_id = "Security.Misc.ImageCodeSectionsRoDataSectionsXp"
    description = "Image code sections are EFI_MEMORY_RO and data sections are EFI_MEMORY_XP"
    priority = 60

    def _check(self, verdict: interfaces.checks.AuditVerdict) -> None:
        table = self.context.page_table()
        loaded_images = self.context.loaded_images()

        if not loaded_images:
            vollog.error(f"{verdict.name}: Unable to find any loaded images")
            verdict.record(0, 0, "no loaded images")
            verdict.passed = False
            return

        for image in loaded_images:
            name = image.name
            if name is None:
                vollog.warning(
                    f"Could not get name of image loaded at 0x{image.base:x} - 0x{image.end:x}..."
                )

            if not is_section_aligned(
                image.section_alignment, image.code_type, self.context.architecture
            ):
                verdict.fail(image.base, image.end, f"Image {name} is not aligned")
                continue

            for section in image.sections:
                start = image.base + section.virtual_address
                end = start + align_value(section.raw_size, image.section_alignment)
                characteristics = section.characteristics

                if characteristics & constants.SectionCharacteristics.CNT_CODE and (
                    characteristics
                    & (
                        constants.SectionCharacteristics.CNT_INITIALIZED_DATA
                        | constants.SectionCharacteristics.CNT_UNINITIALIZED_DATA
                    )
                ):
                    verdict.fail(start, end, f"Image {name}: Section contains code and data")
                elif (
                    characteristics
                    & (
                        constants.SectionCharacteristics.MEM_WRITE
                        | constants.SectionCharacteristics.MEM_EXECUTE
                    )
                ) == constants.SectionCharacteristics.MEM_EXECUTE:
                    if not validator.validate_region(
                        table,
                        start,
                        end - start,
                        constants.Attribute.RO,
                        constants.MatchMode.ALL,
                    ):
                        verdict.fail(start, end, f"Image {name}: Section is not EFI_MEMORY_RO")
                elif not validator.validate_region(
                    table,
                    start,
                    end - start,
                    constants.Attribute.XP,
                    constants.MatchMode.ALL,
                ):
                    verdict.fail(start, end, f"Image {name}: Section is not EFI_MEMORY_XP")
