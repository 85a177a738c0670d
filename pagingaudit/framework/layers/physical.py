# This file is Copyright 2019 Volatility Foundation and licensed under the Volatility Software License 1.0
# which is available at https://www.volatilityfoundation.org/license/vsl-v1.0
#
import logging
from typing import IO, Any, Dict, Optional

from pagingaudit.framework import exceptions, interfaces

vollog = logging.getLogger(__name__)


class BufferDataLayer(interfaces.layers.DataLayerInterface):
    """A DataLayer class backed by a buffer in memory, designed for testing and
    swift data access."""

    def __init__(
        self,
        name: str,
        buffer: bytes,
        metadata: Optional[Dict[str, Any]] = None,
        offset: int = 0,
    ) -> None:
        super().__init__(name=name, metadata=metadata)
        self._buffer = buffer
        self._offset = offset

    @property
    def maximum_address(self) -> int:
        """Returns the largest available address in the space."""
        return self.minimum_address + len(self._buffer) - 1

    @property
    def minimum_address(self) -> int:
        """Returns the smallest available address in the space."""
        return self._offset

    def is_valid(self, offset: int, length: int = 1) -> bool:
        """Returns whether the offset is valid or not."""
        return bool(
            self.minimum_address <= offset <= self.maximum_address
            and self.minimum_address <= offset + length - 1 <= self.maximum_address
        )

    def read(self, offset: int, length: int, pad: bool = False) -> bytes:
        """Reads the data from the buffer."""
        if not self.is_valid(offset, length):
            if pad and self.minimum_address <= offset <= self.maximum_address:
                real_offset = offset - self.minimum_address
                data = self._buffer[real_offset : real_offset + length]
                return data + b"\x00" * (length - len(data))
            invalid_address = offset
            if self.minimum_address < offset <= self.maximum_address:
                invalid_address = self.maximum_address + 1
            raise exceptions.InvalidAddressException(
                self.name, invalid_address, "Offset outside of the buffer boundaries"
            )
        real_offset = offset - self.minimum_address
        return self._buffer[real_offset : real_offset + length]


class FileLayer(interfaces.layers.DataLayerInterface):
    """a DataLayer backed by a physical memory image on the filesystem."""

    def __init__(
        self,
        name: str,
        location: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(name=name, metadata=metadata)
        self._location = location
        self._file_: Optional[IO[Any]] = None
        self._maximum_address: Optional[int] = None
        # Instantiate the file to throw exceptions if the file doesn't open
        _ = self._file

    @property
    def location(self) -> str:
        """Returns the location on which this Layer abstracts."""
        return self._location

    @property
    def _file(self) -> IO[Any]:
        self._file_ = self._file_ or open(self._location, "rb")
        return self._file_

    @property
    def maximum_address(self) -> int:
        """Returns the largest available address in the space."""
        # Zero based, so we return the size of the file minus 1
        if self._maximum_address is not None:
            return self._maximum_address
        orig = self._file.tell()
        self._file.seek(0, 2)
        self._maximum_address = self._file.tell() - 1
        self._file.seek(orig)
        return self._maximum_address

    @property
    def minimum_address(self) -> int:
        """Returns the smallest available address in the space."""
        return 0

    def is_valid(self, offset: int, length: int = 1) -> bool:
        """Returns whether the offset is valid or not."""
        if length <= 0:
            raise ValueError("Length must be positive")
        return bool(
            self.minimum_address <= offset <= self.maximum_address
            and self.minimum_address <= offset + length - 1 <= self.maximum_address
        )

    def read(self, offset: int, length: int, pad: bool = False) -> bytes:
        """Reads from the file at offset for length."""
        if not self.is_valid(offset, length) and not pad:
            invalid_address = offset
            if self.minimum_address < offset <= self.maximum_address:
                invalid_address = self.maximum_address + 1
            raise exceptions.InvalidAddressException(
                self.name, invalid_address, "Offset outside of the file boundaries"
            )

        self._file.seek(offset)
        data = self._file.read(length)

        if len(data) < length:
            if pad:
                data += b"\x00" * (length - len(data))
            else:
                raise exceptions.InvalidAddressException(
                    self.name,
                    offset + len(data),
                    "Could not read sufficient bytes from the " + self.name + " file",
                )
        return data

    def destroy(self) -> None:
        """Closes the file handle."""
        if self._file_ is not None:
            self._file_.close()
            self._file_ = None

    def __enter__(self) -> "FileLayer":
        return self

    def __exit__(self, type, value, traceback) -> None:
        self.destroy()
