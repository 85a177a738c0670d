# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""The flat range table and the attribute query that runs against it.

A flat range table is the normalized view of a platform's translation
structure: a sorted list of disjoint linear ranges, each carrying the
access attributes that apply to it.  Any address not covered by an entry
is unmapped.
"""
import bisect
import enum
import logging
from typing import Iterator, List, NamedTuple, Optional, Sequence

from pagingaudit.framework import constants, exceptions, interfaces

vollog = logging.getLogger(__name__)


def size_to_pages(size: int) -> int:
    """Returns the number of pages needed to hold size bytes."""
    return (size + constants.PAGE_SIZE - 1) // constants.PAGE_SIZE


class StaticRangeTableProducer(interfaces.producers.RangeTableProducerInterface):
    """Produces a flat range table from an already flattened list of entries.

    The entries are handed out in the order given, so that an inconsistent
    list stays inconsistent in the table.
    """

    def __init__(self, entries: Sequence[interfaces.producers.RangeEntry]) -> None:
        self._entries = list(entries)

    def fill(self, buffer: List[Optional[interfaces.producers.RangeEntry]]) -> int:
        return interfaces.producers.fill_buffer(buffer, self._entries)


class RangeTable:
    """A growable buffer of flat table entries filled by a producer.

    Storage is allocated in whole pages and sized through a two phase
    protocol: :meth:`ensure_capacity` asks the producer how many entries
    it has and grows the buffer, :meth:`populate` then refills it.
    """

    def __init__(
        self,
        producer: interfaces.producers.RangeTableProducerInterface,
        name: str = "page_table",
    ) -> None:
        self._producer = producer
        self._name = name
        self._entries: Optional[List[Optional[interfaces.producers.RangeEntry]]] = None
        self._entry_count = 0
        self._pages_allocated = 0
        self._bases: Optional[List[int]] = None

    @classmethod
    def from_entries(
        cls, entries: Sequence[interfaces.producers.RangeEntry], name: str = "page_table"
    ) -> "RangeTable":
        """Builds and populates a table directly from a list of entries."""
        table = cls(StaticRangeTableProducer(entries), name)
        table.ensure_capacity()
        table.populate()
        return table

    @property
    def name(self) -> str:
        return self._name

    @property
    def entry_count(self) -> int:
        """The number of valid entries (or, between sizing and population, the entries requested)."""
        return self._entry_count

    @property
    def pages_allocated(self) -> int:
        return self._pages_allocated

    @property
    def capacity(self) -> int:
        """The maximum number of entries the current allocation can hold."""
        return (self._pages_allocated * constants.PAGE_SIZE) // constants.RANGE_ENTRY_SIZE

    @property
    def populated(self) -> bool:
        return self._bases is not None

    @property
    def entries(self) -> List[interfaces.producers.RangeEntry]:
        if not self.populated or self._entries is None:
            return []
        return self._entries[: self._entry_count]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[interfaces.producers.RangeEntry]:
        return iter(self.entries)

    def free(self) -> None:
        """Releases the buffer, resetting the counts along with it."""
        self._entries = None
        self._bases = None
        self._entry_count = 0
        self._pages_allocated = 0

    def ensure_capacity(self) -> None:
        """Checks the allocation against the producer's requirement and
        reallocates it 20% larger than required if it is too small.

        Existing contents do not survive a reallocation.
        """
        try:
            self._producer.fill([])
        except exceptions.BufferTooSmallException as excp:
            required = excp.required
        else:
            raise exceptions.PopulationException(
                f"Failed to get the required size for {self._name}"
            )

        required_pages = size_to_pages(required * constants.RANGE_ENTRY_SIZE)
        if required_pages >= self._pages_allocated:
            self.free()
            entry_count = required + (required // constants.GROWTH_DIVISOR)
            pages = size_to_pages(entry_count * constants.RANGE_ENTRY_SIZE)
            vollog.log(
                constants.LOGLEVEL_VV,
                f"Allocating {pages} pages for {entry_count} entries of {self._name}",
            )
            try:
                self._entries = [None] * (
                    (pages * constants.PAGE_SIZE) // constants.RANGE_ENTRY_SIZE
                )
            except MemoryError as excp:
                raise exceptions.ResourceExhaustionException(
                    f"Failed to allocate {pages} pages for {self._name}"
                ) from excp
            self._entry_count = entry_count
            self._pages_allocated = pages

    def populate(self) -> None:
        """Fills the allocated buffer from the producer.

        Raises:
            AllocationTooSmallException: If no storage has been allocated yet
            ResourceExhaustionException: If the producer still needs more room
            MalformedTableException: If the produced entries are unsorted or overlap
        """
        if not self._entries or self._entry_count == 0:
            raise exceptions.AllocationTooSmallException(
                f"No storage allocated for {self._name}"
            )

        self._entries[:] = [None] * len(self._entries)
        self._bases = None
        self._entry_count = self.capacity
        try:
            written = self._producer.fill(self._entries)
        except exceptions.BufferTooSmallException as excp:
            self._entry_count = 0
            raise exceptions.ResourceExhaustionException(
                f"{self._name} needs {excp.required} entries but only {self.capacity} fit"
            ) from excp
        self._entry_count = written
        self._bases = self._index(self._entries[:written])
        vollog.debug(f"Populated {self._name} with {written} entries")

    def _index(self, entries: List[Optional[interfaces.producers.RangeEntry]]) -> List[int]:
        """Verifies the table's ordering and returns the base of every entry."""
        bases = []
        previous_end = None
        for entry in entries:
            if entry is None or entry.length <= 0:
                raise exceptions.MalformedTableException(
                    self._name,
                    entry.base if entry else 0,
                    f"Empty entry in {self._name}",
                )
            if previous_end is not None and entry.base < previous_end:
                raise exceptions.MalformedTableException(
                    self._name,
                    entry.base,
                    f"Entry at 0x{entry.base:x} in {self._name} is unsorted or overlaps its predecessor",
                )
            bases.append(entry.base)
            previous_end = entry.end
        return bases

    def locate(self, address: int) -> int:
        """Returns the index of the last entry whose base is at or below address, or -1."""
        if self._bases is None:
            raise exceptions.MalformedTableException(
                self._name, address, f"{self._name} has not been populated"
            )
        return bisect.bisect_right(self._bases, address) - 1


class QueryStatus(enum.Enum):
    SUCCESS = "success"
    """The whole range was classified"""
    PARTIAL = "partial"
    """Only a prefix of the range was classified, the rest needs another query"""
    NO_MAPPING = "no mapping"
    """The range starts in a hole"""


class QueryResult(NamedTuple):
    status: QueryStatus
    attributes: int
    covered: int

    @property
    def mapped(self) -> bool:
        return self.status != QueryStatus.NO_MAPPING


def query(table: RangeTable, address: int, length: int) -> QueryResult:
    """Determines the attributes that apply from address onwards.

    Starting from the entry that contains address, contiguous entries
    with identical attributes are merged into a single run.  The run stops
    at the first hole or change of attributes, and the result reports how
    many bytes of the request it covered.  When address lies in a hole the
    result is NO_MAPPING, covering the bytes up to the next mapped entry.

    Args:
        table: A populated flat range table
        address: The start of the range
        length: The number of bytes requested

    Returns:
        A (status, attributes, covered) tuple
    """
    if length < 0 or not 0 <= address <= constants.MAX_ADDRESS:
        raise exceptions.InvalidAddressException(
            table.name,
            address,
            f"Invalid range 0x{address:x} (length 0x{length:x}) for {table.name}",
        )

    entries = table.entries
    index = table.locate(address)
    request_end = address + length

    if index >= 0 and entries[index].end > address:
        entry = entries[index]
        run_end = entry.end
        next_index = index + 1
        while run_end < request_end and next_index < len(entries):
            candidate = entries[next_index]
            if candidate.base < run_end:
                raise exceptions.MalformedTableException(
                    table.name, candidate.base, f"Overlapping entries in {table.name}"
                )
            if candidate.base != run_end or candidate.attributes != entry.attributes:
                break
            run_end = candidate.end
            next_index += 1
        covered = min(run_end, request_end) - address
        status = QueryStatus.SUCCESS if covered == length else QueryStatus.PARTIAL
        return QueryResult(status, entry.attributes, covered)

    next_base = request_end
    if index + 1 < len(entries):
        next_base = min(entries[index + 1].base, request_end)
    return QueryResult(QueryStatus.NO_MAPPING, 0, next_base - address)
