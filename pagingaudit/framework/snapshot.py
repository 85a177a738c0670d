# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Platform snapshots.

A snapshot is a JSON capture of everything an audit asks of the platform:
the flat range table (or a raw page table dump to flatten), the boot memory
map, the physical address space map, the exemption data, the loaded images,
the boot stack and the memory attribute capability.  Addresses may be given
as integers or as hexadecimal strings, memory types by name or number.

:class:`SnapshotSource` answers every producer interface from a snapshot and
:func:`write_snapshot` exports the contents of an audit context as one.
"""
import enum
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Type, Union

from pagingaudit import schemas
from pagingaudit.framework import constants, contexts, exceptions, images, interfaces
from pagingaudit.framework.layers import intel, physical

vollog = logging.getLogger(__name__)


def parse_int(value: Union[int, str]) -> int:
    """Returns an integer from either an integer or a hexadecimal string."""
    if isinstance(value, int):
        return value
    return int(value, 16)


def parse_attributes(value: Union[int, str, List[str]]) -> int:
    if isinstance(value, list):
        result = constants.Attribute.NONE
        for name in value:
            result |= constants.Attribute[name]
        return int(result)
    return parse_int(value)


def parse_enum(value: Union[int, str], enum_class: Type[enum.IntEnum]) -> int:
    """Returns the numeric value of a type given either by name or number.

    Numbers outside the enumeration (such as OEM defined types) are kept
    as they are.
    """
    if isinstance(value, str):
        try:
            return enum_class[value]
        except KeyError:
            raise ValueError(f"Unknown {enum_class.__name__}: {value}")
    try:
        return enum_class(value)
    except ValueError:
        return value


def format_enum(value: int, enum_class: Type[enum.IntEnum]) -> Union[int, str]:
    try:
        return enum_class(value).name
    except ValueError:
        return value


def format_int(value: int) -> str:
    return f"0x{value:x}"


class SnapshotSource(interfaces.producers.PlatformSourceInterface):
    """A platform source backed by a snapshot.

    Any section missing from the snapshot is reported as an unavailable
    producer, apart from the boot stack which is simply absent.

    Args:
        data: The decoded snapshot
        location: Where the snapshot came from, used for messages and to resolve relative file references
    """

    def __init__(self, data: Dict[str, Any], location: str = "<memory>") -> None:
        self._location = location
        if not schemas.validate(data):
            raise exceptions.SnapshotException(
                location, f"Snapshot {location} does not match the snapshot schema"
            )
        self._data = data
        self._base_directory = (
            os.path.dirname(os.path.abspath(location))
            if os.path.exists(location)
            else os.getcwd()
        )
        self._memory_layer: Optional[physical.FileLayer] = None
        self._flattener: Optional[intel.Intel32eFlattener] = None
        self._loaded_images: Optional[List[interfaces.producers.LoadedImage]] = None

        try:
            self._page_table = self._parse_list(
                "page_table",
                lambda x: interfaces.producers.RangeEntry(
                    parse_int(x["base"]),
                    parse_int(x["length"]),
                    parse_attributes(x.get("attributes", 0)),
                ),
            )
            self._memory_map = self._parse_list(
                "memory_map",
                lambda x: interfaces.producers.MemoryMapEntry(
                    parse_enum(x["type"], constants.MemoryType),
                    parse_int(x["base"]),
                    parse_int(x["pages"]),
                    parse_int(x.get("attribute", 0)),
                ),
            )
            self._memory_space_map = self._parse_list(
                "memory_space_map",
                lambda x: interfaces.producers.AddressSpaceDescriptor(
                    parse_enum(x["type"], constants.GcdMemoryType),
                    parse_int(x["base"]),
                    parse_int(x["length"]),
                    parse_int(x.get("capabilities", 0)),
                    parse_int(x.get("attributes", 0)),
                ),
            )
            self._special_regions = self._parse_list(
                "special_regions",
                lambda x: interfaces.producers.SpecialRegion(
                    parse_int(x["base"]),
                    parse_int(x["length"]),
                    parse_attributes(x.get("attributes", 0)),
                ),
            )
            self._non_protected_images = self._parse_list(
                "non_protected_images",
                lambda x: interfaces.producers.AddressRange(
                    parse_int(x["base"]), parse_int(x["length"])
                ),
            )
            boot_stack = data.get("boot_stack", None)
            self._boot_stack = (
                interfaces.producers.AddressRange(
                    parse_int(boot_stack["base"]), parse_int(boot_stack["length"])
                )
                if boot_stack
                else None
            )
        except (KeyError, ValueError) as excp:
            raise exceptions.SnapshotException(
                location, f"Invalid value in snapshot {location}: {excp}"
            ) from excp

    @classmethod
    def from_file(cls, location: str) -> "SnapshotSource":
        """Loads a snapshot from a JSON file."""
        try:
            with open(location, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as excp:
            raise exceptions.SnapshotException(
                location, f"Unable to read snapshot {location}: {excp}"
            ) from excp
        vollog.debug(f"Loaded snapshot {location}")
        return cls(data, location)

    @property
    def location(self) -> str:
        return self._location

    @property
    def metadata(self) -> Dict[str, Any]:
        return self._data["metadata"]

    @property
    def architecture(self) -> str:
        return self.metadata.get("architecture", constants.DEFAULT_ARCHITECTURE)

    def _parse_list(self, key: str, parser: Callable[[Dict[str, Any]], Any]) -> Optional[List]:
        if key not in self._data:
            return None
        return [parser(item) for item in self._data[key]]

    def _resolve(self, filename: str) -> str:
        return os.path.join(self._base_directory, filename)

    def _get_flattener(self) -> intel.Intel32eFlattener:
        if self._flattener is None:
            dump = self._data["page_table_dump"]
            try:
                self._memory_layer = physical.FileLayer(
                    "memory_layer", self._resolve(dump["file"])
                )
            except OSError as excp:
                raise exceptions.SnapshotException(
                    self._location, f"Unable to open page table dump {dump['file']}: {excp}"
                ) from excp
            flattener_class = intel.flattener_for_levels(dump.get("levels", 4))
            self._flattener = flattener_class(
                self._memory_layer, parse_int(dump["page_map_offset"])
            )
        return self._flattener

    def fill(self, buffer: List[Optional[interfaces.producers.RangeEntry]]) -> int:
        if self._page_table is not None:
            return interfaces.producers.fill_buffer(buffer, self._page_table)
        if "page_table_dump" in self._data:
            return self._get_flattener().fill(buffer)
        raise exceptions.ProducerUnavailableException("page table")

    def get_memory_map(self, buffer: List[Optional[interfaces.producers.MemoryMapEntry]]) -> int:
        if self._memory_map is None:
            raise exceptions.ProducerUnavailableException("memory map")
        return interfaces.producers.fill_buffer(buffer, self._memory_map)

    def get_memory_space_map(self) -> List[interfaces.producers.AddressSpaceDescriptor]:
        if self._memory_space_map is None:
            raise exceptions.ProducerUnavailableException("memory space map")
        return list(self._memory_space_map)

    def get_special_regions(self) -> List[interfaces.producers.SpecialRegion]:
        if self._special_regions is None:
            raise exceptions.ProducerUnavailableException("special regions")
        return list(self._special_regions)

    def get_non_protected_images(self) -> List[interfaces.producers.AddressRange]:
        if self._non_protected_images is None:
            raise exceptions.ProducerUnavailableException("non-protected images")
        return list(self._non_protected_images)

    def enumerate_loaded_images(self) -> List[interfaces.producers.LoadedImage]:
        if "loaded_images" not in self._data:
            raise exceptions.ProducerUnavailableException("loaded images")
        if self._loaded_images is None:
            self._loaded_images = [
                self._parse_image(image) for image in self._data["loaded_images"]
            ]
        return list(self._loaded_images)

    def _parse_image(self, image: Dict[str, Any]) -> interfaces.producers.LoadedImage:
        try:
            code_type = parse_enum(image["code_type"], constants.MemoryType)
        except ValueError as excp:
            raise exceptions.SnapshotException(self._location, str(excp)) from excp
        if "file" in image:
            try:
                return images.read_pe_image(
                    self._resolve(image["file"]),
                    parse_int(image["base"]),
                    code_type,
                    image.get("name", None),
                )
            except OSError as excp:
                raise exceptions.SnapshotException(
                    self._location, f"Unable to read image {image['file']}: {excp}"
                ) from excp
        return interfaces.producers.LoadedImage(
            name=image.get("name", None),
            base=parse_int(image["base"]),
            size=parse_int(image["size"]),
            code_type=code_type,
            section_alignment=parse_int(image["section_alignment"]),
            sections=[
                interfaces.producers.ImageSection(
                    name=section.get("name", ""),
                    virtual_address=parse_int(section["virtual_address"]),
                    raw_size=parse_int(section["raw_size"]),
                    characteristics=parse_int(section["characteristics"]),
                )
                for section in image["sections"]
            ],
        )

    def get_boot_stack_range(self) -> Optional[interfaces.producers.AddressRange]:
        return self._boot_stack

    def has_memory_attribute_interface(self) -> bool:
        return bool(self._data.get("memory_attribute_protocol", False))

    def close(self) -> None:
        """Closes the physical memory image behind a page table dump."""
        if self._memory_layer is not None:
            self._memory_layer.destroy()
            self._memory_layer = None
            self._flattener = None


def build_snapshot(context: contexts.AuditContext) -> Dict[str, Any]:
    """Captures everything an audit context can see as a snapshot.

    The flat range table is always exported in full.  Any other section the
    platform cannot provide is left out.
    """
    snapshot: Dict[str, Any] = {
        "metadata": {
            "format": constants.SNAPSHOT_FORMAT,
            "architecture": context.architecture,
            "producer": {
                "name": "pagingaudit",
                "version": constants.PACKAGE_VERSION,
            },
        },
        "page_table": [
            {
                "base": format_int(entry.base),
                "length": format_int(entry.length),
                "attributes": format_int(entry.attributes),
            }
            for entry in context.page_table()
        ],
    }

    try:
        snapshot["memory_map"] = [
            {
                "type": format_enum(entry.type, constants.MemoryType),
                "base": format_int(entry.base),
                "pages": format_int(entry.pages),
                "attribute": format_int(entry.attribute),
            }
            for entry in context.memory_map()
        ]
    except exceptions.ProducerUnavailableException as excp:
        vollog.warning(f"Memory map not exported: {excp}")

    try:
        snapshot["memory_space_map"] = [
            {
                "type": format_enum(descriptor.type, constants.GcdMemoryType),
                "base": format_int(descriptor.base),
                "length": format_int(descriptor.length),
                "capabilities": format_int(descriptor.capabilities),
                "attributes": format_int(descriptor.attributes),
            }
            for descriptor in context.memory_space_map()
        ]
    except exceptions.ProducerUnavailableException as excp:
        vollog.warning(f"Memory space map not exported: {excp}")

    special_regions = context.special_regions()
    if special_regions is not None:
        snapshot["special_regions"] = [
            {
                "base": format_int(region.base),
                "length": format_int(region.length),
                "attributes": format_int(region.attributes),
            }
            for region in special_regions
        ]

    non_protected_images = context.non_protected_images()
    if non_protected_images is not None:
        snapshot["non_protected_images"] = [
            {"base": format_int(image.base), "length": format_int(image.length)}
            for image in non_protected_images
        ]

    try:
        snapshot["loaded_images"] = [
            {
                "name": image.name,
                "base": format_int(image.base),
                "size": format_int(image.size),
                "code_type": format_enum(image.code_type, constants.MemoryType),
                "section_alignment": format_int(image.section_alignment),
                "sections": [
                    {
                        "name": section.name,
                        "virtual_address": format_int(section.virtual_address),
                        "raw_size": format_int(section.raw_size),
                        "characteristics": format_int(section.characteristics),
                    }
                    for section in image.sections
                ],
            }
            for image in context.loaded_images()
        ]
    except exceptions.ProducerUnavailableException as excp:
        vollog.warning(f"Loaded images not exported: {excp}")

    stack = context.boot_stack()
    snapshot["boot_stack"] = (
        {"base": format_int(stack.base), "length": format_int(stack.length)}
        if stack
        else None
    )
    snapshot["memory_attribute_protocol"] = context.has_memory_attribute_interface()
    return snapshot


def write_snapshot(context: contexts.AuditContext, location: str) -> Dict[str, Any]:
    """Writes the snapshot of an audit context to a JSON file.

    Returns:
        The snapshot that was written
    """
    snapshot = build_snapshot(context)
    with open(location, "w") as f:
        json.dump(snapshot, f, indent=2)
    vollog.info(
        f"Wrote {len(snapshot['page_table'])} page table entries to {location}"
    )
    return snapshot
