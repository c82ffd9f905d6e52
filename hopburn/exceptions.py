"""
Exception hierarchy for hopburn.

All exceptions inherit from HopBurnError. The hierarchy follows the four
failure domains of the library:

1. Codec errors are local to encoding/decoding and never touch I/O
2. Transport errors are fatal to the current connection
3. Protocol errors abort the current operation but keep the connection
4. Usage errors are raised before anything is written to the transport
"""

from __future__ import annotations


class HopBurnError(Exception):
    """
    Base exception for all hopburn errors.

    All library-specific exceptions inherit from this class, allowing
    callers to catch all hopburn errors with a single except clause.
    """

    pass


# ===== Codec =====


class CodecError(HopBurnError):
    """Identity record could not be encoded or decoded."""

    pass


class InvalidFieldError(CodecError):
    """
    A record field cannot be represented in the wire image.

    Raised when:
    - USB VID/PID is not a 16-bit hexadecimal value
    - A string is longer than 255 bytes once UTF-8 encoded
    - A decoded field holds invalid UTF-8 or an out-of-range value
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class TooShortError(CodecError):
    """Buffer is shorter than the minimum image header."""

    def __init__(self, length: int, minimum: int) -> None:
        super().__init__(f"Image is too short: {length} bytes (minimum {minimum})")
        self.length = length
        self.minimum = minimum


class BadMagicError(CodecError):
    """Buffer does not start with the HOP! magic number."""

    def __init__(self, magic: bytes) -> None:
        super().__init__(f"Invalid magic number: {magic!r}")
        self.magic = magic


class TruncatedError(CodecError):
    """
    A length prefix points past the end of the buffer.

    Attributes:
        offset: Byte offset where the read started.
        needed: Number of bytes the read required.
        available: Number of bytes left in the buffer.
    """

    def __init__(self, offset: int, needed: int, available: int) -> None:
        super().__init__(
            f"Image truncated at offset {offset}: need {needed} bytes, {available} available"
        )
        self.offset = offset
        self.needed = needed
        self.available = available


# ===== Transport =====


class TransportError(HopBurnError):
    """
    Transport-level error.

    Raised for low-level transport issues:
    - Serial port cannot be opened
    - Write or read failures
    - Port closed by the other side
    """

    pass


# ===== Protocol =====


class ProtocolError(HopBurnError):
    """
    Programmer protocol error.

    The current operation is aborted; the connection stays open.
    """

    pass


class UnexpectedResponseError(ProtocolError):
    """
    The programmer answered with a line the protocol does not allow here.

    Attributes:
        line: The offending line, without its terminator.
        expected: The response that was expected, if any.
    """

    def __init__(self, line: str, expected: str | None = None) -> None:
        self.line = line
        self.expected = expected
        message = f"Unexpected response: {line!r}"
        if expected is not None:
            message += f" (expected {expected!r})"
        super().__init__(message)


class TimeoutError(ProtocolError):  # noqa: A001 - intentionally shadows builtin
    """
    No acceptable response arrived in time.

    The programmer may be busy, wedged, or not attached at all.
    """

    def __init__(
        self,
        message: str = "Timeout waiting for programmer",
        *,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        self.timeout_seconds = timeout_seconds

    def __str__(self) -> str:
        base = super().__str__()
        if self.timeout_seconds is not None:
            return f"{base} (after {self.timeout_seconds:.1f}s)"
        return base


class DecodeError(ProtocolError):
    """Programmer info line was JSON but not the expected structure."""

    def __init__(self, message: str, *, line: str | None = None) -> None:
        super().__init__(message)
        self.line = line


# ===== Usage =====


class UsageError(HopBurnError):
    """Operation invoked in a state that does not allow it."""

    pass


class NotConnectedError(UsageError):
    """A protocol operation was requested without an open connection."""

    def __init__(self, message: str = "Not connected") -> None:
        super().__init__(message)


class AlreadyConnectedError(UsageError):
    """Connect was requested while a transport is already open."""

    pass


# ===== Files =====


class DataFileError(HopBurnError):
    """Wire image or C source file could not be read or written."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
