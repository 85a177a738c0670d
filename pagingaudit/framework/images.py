# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Reads PE/COFF images into the section records the image check consumes."""
import logging
import os
from typing import Optional, Union

import pefile

from pagingaudit.framework import constants, exceptions, interfaces

vollog = logging.getLogger(__name__)

CODEVIEW_DEBUG_TYPE = 2


def pdb_name(pe_data: pefile.PE) -> Optional[str]:
    """Returns the PDB filename recorded in an image's CodeView debug entry."""
    if not hasattr(pe_data, "DIRECTORY_ENTRY_DEBUG") or not len(
        pe_data.DIRECTORY_ENTRY_DEBUG
    ):
        return None

    for debug_data in pe_data.DIRECTORY_ENTRY_DEBUG:
        if debug_data.struct.Type != CODEVIEW_DEBUG_TYPE:
            continue
        debug_entry = getattr(debug_data, "entry", None)
        if debug_entry is not None and hasattr(debug_entry, "PdbFileName"):
            return debug_entry.PdbFileName.decode("utf-8", "replace").strip("\x00")
    return None


def read_pe_image(
    image: Union[str, bytes],
    base: int,
    code_type: int,
    name: Optional[str] = None,
) -> interfaces.producers.LoadedImage:
    """Parses an image and returns it as a loaded image at base.

    Args:
        image: The path of the image file, or its contents
        base: The address the image is loaded at
        code_type: The memory type the image's code was allocated from
        name: The name to report the image under (defaults to the PDB name, then the file name)

    Returns:
        The loaded image with its section headers
    """
    location = image if isinstance(image, str) else "<buffer>"
    if isinstance(image, str):
        with open(image, "rb") as f:
            image = f.read()

    try:
        pe_data = pefile.PE(data=image, fast_load=True)
        pe_data.parse_data_directories(
            directories=[pefile.DIRECTORY_ENTRY["IMAGE_DIRECTORY_ENTRY_DEBUG"]]
        )
    except pefile.PEFormatError as excp:
        raise exceptions.ImageFormatException(
            name or location, f"Unable to parse {location}: {excp}"
        ) from excp

    if name is None:
        name = pdb_name(pe_data)
    if name is None and location != "<buffer>":
        name = os.path.basename(location)

    sections = [
        interfaces.producers.ImageSection(
            name=sect.Name.decode("utf-8", "replace").rstrip("\x00"),
            virtual_address=sect.VirtualAddress,
            raw_size=sect.SizeOfRawData,
            characteristics=sect.Characteristics,
        )
        for sect in pe_data.sections
    ]
    vollog.log(
        constants.LOGLEVEL_V,
        f"Read image {name} from {location} with {len(sections)} sections",
    )
    return interfaces.producers.LoadedImage(
        name=name,
        base=base,
        size=pe_data.OPTIONAL_HEADER.SizeOfImage,
        code_type=code_type,
        section_alignment=pe_data.OPTIONAL_HEADER.SectionAlignment,
        sections=sections,
    )
