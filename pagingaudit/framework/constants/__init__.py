# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""Paging Audit Constants.

Stores all the constant values that are generally fixed throughout
an audit run.  This includes the page granularity, the access attribute
bits and the memory type classifications used by the inventories.
"""
import enum
import os.path
import sys

from pagingaudit.framework.constants._version import (
    PACKAGE_VERSION,
    VERSION_MAJOR,
    VERSION_MINOR,
    VERSION_PATCH,
    VERSION_SUFFIX,
)

CHECKS_PATH = [
    os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "checks")),
]
"""Default list of paths to load checks from (pagingaudit/framework/checks)"""

LOGLEVEL_INFO = 20
"""Logging level for information data, showed when use the requests any logging: -v"""
LOGLEVEL_DEBUG = 10
"""Logging level for debugging data, showed when the user requests more logging detail: -vv"""
LOGLEVEL_V = 9
"""Logging level for the lowest "extra" level of logging: -vvv"""
LOGLEVEL_VV = 8
"""Logging level for two levels of detail: -vvvv"""
LOGLEVEL_VVV = 7
"""Logging level for three levels of detail: -vvvvv"""
LOGLEVEL_VVVV = 6
"""Logging level for four levels of detail: -vvvvvv"""

CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".config", "pagingaudit")
"""Default directory holding the system default configuration"""

if sys.platform == "win32":
    CONFIG_PATH = os.path.realpath(
        os.path.join(os.environ.get("APPDATA", os.path.expanduser("~")), "pagingaudit")
    )

DEFAULTS_FILENAME = "pagingaudit.json"
"""Name of the system defaults file within CONFIG_PATH"""

SNAPSHOT_FORMAT = "1.0.0"
"""The snapshot format version written by the dump command"""

DUMP_FILENAME = "paging_snapshot.json"
"""Default filename for the dump command"""

BUG_URL = "https://github.com/pagingaudit/pagingaudit/issues"

PAGE_SIZE = 0x1000
"""Size of the pages the translation structures and inventories are measured in"""

RANGE_ENTRY_SIZE = 24
"""Bytes occupied by a single flat table entry (base, length and attributes, 64 bits each)"""

GROWTH_DIVISOR = 5
"""Buffers are grown by 1 / GROWTH_DIVISOR (20%) beyond the size the producer asked for"""

MAX_ADDRESS = (1 << 64) - 1
"""The highest address representable in the audited address space"""

RUNTIME_PAGE_ALLOCATION_GRANULARITY = {
    "aarch64": 0x10000,
    "arm": 0x1000,
    "ia32": 0x1000,
    "x64": 0x1000,
}
"""Allocation granularity for runtime memory by architecture"""

DEFAULT_ARCHITECTURE = "x64"

BOOT_STACK_GUID = "4ed4bf27-4092-42e9-807d-527b1d00c9bd"
"""Name of the memory allocation descriptor that identifies the boot processor stack"""


class Attribute(enum.IntFlag):
    """Access attribute bits carried by each flat table entry.

    The values are those of the UEFI memory attributes so that captured
    firmware data can be used without translation.
    """

    NONE = 0
    RP = 0x2000
    XP = 0x4000
    RO = 0x20000

    @classmethod
    def describe(cls, value: int) -> str:
        """Returns the names of the access bits set in value, separated by `|`"""
        names = [
            flag.name for flag in (cls.RP, cls.RO, cls.XP) if int(value) & flag.value
        ]
        return "|".join(names) if names else "none"


ACCESS_MASK = Attribute.RP | Attribute.RO | Attribute.XP


class MatchMode(enum.Enum):
    """How a region's attributes are compared against the required attributes."""

    ALL = "all"
    """Every required attribute must be present"""
    ANY = "any"
    """At least one of the required attributes must be present"""


class MemoryType(enum.IntEnum):
    """Boot memory map descriptor types."""

    EfiReservedMemoryType = 0
    EfiLoaderCode = 1
    EfiLoaderData = 2
    EfiBootServicesCode = 3
    EfiBootServicesData = 4
    EfiRuntimeServicesCode = 5
    EfiRuntimeServicesData = 6
    EfiConventionalMemory = 7
    EfiUnusableMemory = 8
    EfiACPIReclaimMemory = 9
    EfiACPIMemoryNVS = 10
    EfiMemoryMappedIO = 11
    EfiMemoryMappedIOPortSpace = 12
    EfiPalCode = 13
    EfiPersistentMemory = 14
    EfiUnacceptedMemoryType = 15


class GcdMemoryType(enum.IntEnum):
    """Physical address space descriptor types."""

    NonExistent = 0
    Reserved = 1
    SystemMemory = 2
    MemoryMappedIo = 3
    Persistent = 4
    MoreReliable = 5
    Unaccepted = 6


class SectionCharacteristics(enum.IntFlag):
    """The PE/COFF section characteristics the image check relies upon."""

    CNT_CODE = 0x00000020
    CNT_INITIALIZED_DATA = 0x00000040
    CNT_UNINITIALIZED_DATA = 0x00000080
    MEM_EXECUTE = 0x20000000
    MEM_READ = 0x40000000
    MEM_WRITE = 0x80000000
