"""
Programmer protocol commands and constants.

Covers both halves of the wire contract: the binary identity image layout
and the line-oriented command set understood by the EEPROM programmer.
"""

from __future__ import annotations

from enum import Enum
from typing import Final


class Command(str, Enum):
    """
    Single-letter commands sent to the programmer.

    Every command is written as one ASCII line. LOAD carries the image
    length in decimal directly after the letter (e.g. ``L27``).
    """

    INFO = "I"
    """Request a JSON status line."""

    LOAD = "L"
    """Announce an upload of N bytes."""

    BURN = "B"
    """Write the uploaded image to the EEPROM."""

    VERIFY = "V"
    """Compare EEPROM contents with the uploaded image."""


class Response(str, Enum):
    """Response lines the programmer may send back."""

    GO_AHEAD = "GO_AHEAD"
    """Programmer is ready to receive raw image bytes."""

    OK = "OK"
    """Operation completed."""


class ProtocolConstants:
    """
    Protocol constants.

    Contains the image layout, serial line settings and timing values used
    throughout the library.
    """

    # ===== Image Layout =====

    MAGIC: Final[bytes] = b"HOP!"
    """Magic number at offset 0 of every image."""

    MIN_IMAGE_SIZE: Final[int] = 8
    """Shortest buffer decode will look at (magic + VID + PID)."""

    HEADER_SIZE: Final[int] = 11
    """Magic, VID, PID, version pair and logging level."""

    MAX_STRING_LENGTH: Final[int] = 255
    """Longest string that fits behind a one-byte length prefix."""

    MAX_USB_ID: Final[int] = 0xFFFF
    """Largest USB vendor/product identifier."""

    MAX_VERSION_COMPONENT: Final[int] = 99
    """Largest major or minor version number."""

    # ===== Line Protocol =====

    LINE_TERMINATOR: Final[str] = "\n"
    """Terminator for commands and responses."""

    LINE_ENCODING: Final[str] = "utf-8"
    """Encoding of command and response lines."""

    # ===== Timing Constants (in seconds) =====

    DEFAULT_RESPONSE_TIMEOUT: Final[float] = 5.0
    """Default wait for any response line."""

    DEFAULT_INTER_CHUNK_DELAY: Final[float] = 0.030
    """Pause between chunk writes during an upload."""

    # ===== Transfer =====

    DEFAULT_CHUNK_SIZE: Final[int] = 6
    """Bytes per write during an upload."""

    MAX_CHUNK_SIZE: Final[int] = 64
    """Upper bound on the chunk size; the programmer has no flow control."""

    # ===== Serial Port Configuration =====

    DEFAULT_BAUD_RATE: Final[int] = 19200
    """Default baud rate for the programmer port."""

    # ===== Record Defaults =====

    DEFAULT_USB_VID: Final[str] = "2E8A"
    """Raspberry Pi's VID, shared with Pico-based projects without their own."""

    DEFAULT_MANUFACTURER: Final[str] = "April's Creature Workshop"
    """Manufacturer string pre-filled in new records."""
