# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
"""A list of potential exceptions that the audit framework can throw.

These include the capacity signals exchanged with the producers of the
flat range table and the memory map, failures to obtain an inventory, and
layer exceptions raised when a table or address is invalid.  The
:class:`PagedInvalidAddressException` contains information about the
size of the invalid page.
"""


class PagingAuditException(Exception):
    """Class to allow filtering of all PagingAuditExceptions."""


class BufferTooSmallException(PagingAuditException):
    """Thrown by a producer when the buffer it was handed cannot hold its data.

    Carries the exact number of entries the producer needs.
    """

    def __init__(self, required: int, *args) -> None:
        super().__init__(*args)
        self.required = required

    def __str__(self):
        return f"Buffer too small, {self.required} entries required"


class PopulationException(PagingAuditException):
    """Thrown when a producer fails to report the size of the data it
    produces."""


class AllocationTooSmallException(PopulationException):
    """Thrown when a buffer is populated before any storage has been
    allocated for it."""


class ResourceExhaustionException(PopulationException):
    """Thrown when a buffer could not be grown large enough to hold the
    producer's data."""


class ProducerUnavailableException(PagingAuditException):
    """Thrown when a platform data source is not present."""

    def __init__(self, source: str, *args) -> None:
        super().__init__(*args)
        self.source = source

    def __str__(self):
        detail = super().__str__()
        if detail:
            return f"Producer {self.source} unavailable: {detail}"
        return f"Producer {self.source} unavailable"


class SnapshotException(PagingAuditException):
    """Thrown when a snapshot cannot be read or does not match its schema."""

    def __init__(self, location: str, *args) -> None:
        super().__init__(*args)
        self.location = location


class ImageFormatException(PagingAuditException):
    """Thrown when an executable image cannot be parsed."""

    def __init__(self, image_name: str, *args) -> None:
        super().__init__(*args)
        self.image_name = image_name


class LayerException(PagingAuditException):
    """Thrown when an error occurs dealing with tables and layers."""

    def __init__(self, layer_name: str, *args) -> None:
        super().__init__(*args)
        self.layer_name = layer_name


class InvalidAddressException(LayerException):
    """Thrown when an address is not valid in the layer it was requested."""

    def __init__(self, layer_name: str, invalid_address: int, *args) -> None:
        super().__init__(layer_name, *args)
        self.invalid_address = invalid_address


class MalformedTableException(InvalidAddressException):
    """Thrown when a flat range table contains unsorted or overlapping
    entries.

    This is a violation of the table's invariant rather than a condition
    that can be retried.
    """


class PagedInvalidAddressException(InvalidAddressException):
    """Thrown when an address is not valid in the paged space in which it was
    request.  This is a subclass of InvalidAddressException and is only
    thrown from a page table walker.

    Includes the invalid address and the number of bits of the address
    that are invalid
    """

    def __init__(
        self,
        layer_name: str,
        invalid_address: int,
        invalid_bits: int,
        entry: int,
        *args,
    ) -> None:
        super().__init__(layer_name, invalid_address, *args)
        self.invalid_bits = invalid_bits
        self.entry = entry
