"""
ByteReader - bounds-checked cursor over a wire image.

Every read checks the remaining length first and raises TruncatedError
instead of slicing past the end, so a decoder built on it never returns
partial data.

Example:
    >>> reader = ByteReader(b"\\x2e\\x8a\\x03SN1")
    >>> hex(reader.read_uint16())
    '0x2e8a'
    >>> reader.read_prefixed()
    b'SN1'
    >>> reader.is_at_end()
    True
"""

from __future__ import annotations

import struct

from hopburn.exceptions import TruncatedError

_UINT16 = struct.Struct(">H")


class ByteReader:
    """
    Sequential big-endian reader over an immutable byte buffer.

    Attributes:
        position: Current read offset in bytes.
        remaining: Number of bytes left to read.
    """

    __slots__ = ("_data", "_position")

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)
        self._position = 0

    @property
    def position(self) -> int:
        """Current offset in bytes (0-indexed)."""
        return self._position

    @property
    def remaining(self) -> int:
        """Number of bytes remaining to read."""
        return len(self._data) - self._position

    def is_at_end(self) -> bool:
        """Check if reader has reached the end of data."""
        return self._position >= len(self._data)

    def _check_bounds(self, count: int) -> None:
        if count > self.remaining:
            raise TruncatedError(self._position, count, self.remaining)

    def read_bytes(self, count: int) -> bytes:
        """
        Read `count` bytes and advance.

        Raises:
            TruncatedError: If fewer than `count` bytes remain.
        """
        self._check_bounds(count)
        start = self._position
        self._position += count
        return self._data[start : self._position]

    def read_byte(self) -> int:
        """Read one unsigned byte."""
        self._check_bounds(1)
        value = self._data[self._position]
        self._position += 1
        return value

    def read_uint16(self) -> int:
        """Read a big-endian unsigned 16-bit value."""
        self._check_bounds(2)
        (value,) = _UINT16.unpack_from(self._data, self._position)
        self._position += 2
        return value

    def read_prefixed(self) -> bytes:
        """
        Read a one-byte length followed by that many bytes.

        A length byte with no payload behind it is truncation, not an empty
        string.

        Raises:
            TruncatedError: If the prefix or its payload runs past the end.
        """
        length = self.read_byte()
        return self.read_bytes(length)

    def __repr__(self) -> str:
        return f"ByteReader(pos={self._position}, remaining={self.remaining}, total={len(self._data)})"

    def __len__(self) -> int:
        return len(self._data)
