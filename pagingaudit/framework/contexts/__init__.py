# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""An audit context holds every snapshot a run works from.

The flat range table, the memory inventories and the exemption lists are
captured from the platform the first time a check asks for them, cached
for the rest of the run and released together at the end of it.  Checks
only ever read them.
"""
import logging
from typing import List, Optional

from pagingaudit.framework import constants, exceptions, exemptions, interfaces, inventory
from pagingaudit.framework.layers import flat

vollog = logging.getLogger(__name__)


class AuditContext:
    """Owns the snapshots of a single audit run.

    Args:
        source: The platform data source answering every inventory question
        range_table_producer: An alternative producer for the flat range table (defaults to source)
    """

    def __init__(
        self,
        source: interfaces.producers.PlatformSourceInterface,
        range_table_producer: Optional[
            interfaces.producers.RangeTableProducerInterface
        ] = None,
    ) -> None:
        self._source = source
        self._range_table_producer = range_table_producer or source
        self._page_table: Optional[flat.RangeTable] = None
        self._memory_map: Optional[inventory.MemoryMap] = None
        self._memory_space_map: Optional[
            List[interfaces.producers.AddressSpaceDescriptor]
        ] = None
        self._special_regions: Optional[List[interfaces.producers.SpecialRegion]] = None
        self._non_protected_images: Optional[
            List[interfaces.producers.AddressRange]
        ] = None
        self._loaded_images: Optional[List[interfaces.producers.LoadedImage]] = None

    def __enter__(self) -> "AuditContext":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.release()

    @property
    def source(self) -> interfaces.producers.PlatformSourceInterface:
        return self._source

    @property
    def architecture(self) -> str:
        return self._source.architecture

    @property
    def page_size(self) -> int:
        return constants.PAGE_SIZE

    def page_table(self) -> flat.RangeTable:
        """Returns the flat range table, sizing and populating it on first use."""
        if self._page_table is None:
            self._page_table = flat.RangeTable(self._range_table_producer)
        if not self._page_table.populated:
            self._page_table.ensure_capacity()
            self._page_table.populate()
        return self._page_table

    def memory_map(self) -> inventory.MemoryMap:
        """Returns the boot memory map sorted by base, populating it on first use."""
        if self._memory_map is None:
            self._memory_map = inventory.MemoryMap(self._source)
        if not self._memory_map.populated:
            self._memory_map.ensure_capacity()
            self._memory_map.populate()
        return self._memory_map

    def memory_space_map(self) -> List[interfaces.producers.AddressSpaceDescriptor]:
        """Returns the physical address space map sorted by base.

        Raises:
            ProducerUnavailableException: If the platform cannot provide it
        """
        if self._memory_space_map is None:
            descriptors = self._source.get_memory_space_map()
            if descriptors is None:
                raise exceptions.ProducerUnavailableException("memory space map")
            self._memory_space_map = inventory.sort_memory_space_map(descriptors)
        return self._memory_space_map

    def special_regions(self) -> Optional[List[interfaces.producers.SpecialRegion]]:
        """Returns the special regions, or None when the platform does not provide them."""
        if self._special_regions is None:
            try:
                self._special_regions = list(self._source.get_special_regions())
            except exceptions.ProducerUnavailableException as excp:
                vollog.warning(f"Unable to fetch special region list: {excp}")
        return self._special_regions

    def non_protected_images(self) -> Optional[List[interfaces.producers.AddressRange]]:
        """Returns the non-protected image ranges, or None when the platform does not provide them."""
        if self._non_protected_images is None:
            try:
                self._non_protected_images = list(
                    self._source.get_non_protected_images()
                )
            except exceptions.ProducerUnavailableException as excp:
                vollog.warning(f"Unable to fetch non-protected image list: {excp}")
        return self._non_protected_images

    def exemptions(self) -> exemptions.ExemptionSets:
        """Builds the exemption sets from whichever sources are available."""
        try:
            memory_space_map = self.memory_space_map()
        except exceptions.ProducerUnavailableException as excp:
            vollog.warning(f"Unable to fetch memory space map: {excp}")
            memory_space_map = None
        return exemptions.ExemptionSets(
            self.special_regions(), self.non_protected_images(), memory_space_map
        )

    def loaded_images(self) -> List[interfaces.producers.LoadedImage]:
        if self._loaded_images is None:
            self._loaded_images = list(self._source.enumerate_loaded_images())
        return self._loaded_images

    def boot_stack(self) -> Optional[interfaces.producers.AddressRange]:
        return self._source.get_boot_stack_range()

    def has_memory_attribute_interface(self) -> bool:
        return self._source.has_memory_attribute_interface()

    def release(self) -> None:
        """Frees every cached snapshot."""
        if self._page_table is not None:
            self._page_table.free()
            self._page_table = None
        if self._memory_map is not None:
            self._memory_map.free()
            self._memory_map = None
        self._memory_space_map = None
        self._special_regions = None
        self._non_protected_images = None
        self._loaded_images = None
        vollog.log(constants.LOGLEVEL_VV, "Released audit snapshots")
