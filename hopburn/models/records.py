"""
Pydantic models for identity records and programmer status.

This module defines the core data structures used throughout the library,
implemented as immutable Pydantic models with validation.

Design principles:
- All models are frozen (immutable)
- Range checks that the form enforced live on the model
- Wire-format limits (string byte lengths, hex parsing) are checked by the codec
"""

from __future__ import annotations

import re
from enum import IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hopburn.protocol.constants import ProtocolConstants

_HEX_ID_PATTERN = re.compile(r"^[0-9A-Fa-f]{1,4}$")


def parse_usb_id(value: str) -> int | None:
    """
    Parse a USB vendor/product identifier written in hexadecimal.

    Args:
        value: Hex string such as "2E8A" (1-4 digits, case-insensitive).

    Returns:
        The 16-bit value, or None if the string is not valid hex.

    Example:
        >>> parse_usb_id("2e8a")
        11914
        >>> parse_usb_id("12345") is None
        True
    """
    if not _HEX_ID_PATTERN.match(value):
        return None
    return int(value, 16)


class LogLevel(IntEnum):
    """Firmware logging level stored in the image."""

    FATAL = 0
    ERROR = 1
    WARNING = 2
    INFO = 3
    DEBUG = 4
    VERBOSE = 5

    @property
    def label(self) -> str:
        """Human readable name, e.g. "Warning"."""
        return self.name.capitalize()


class IdentityRecord(BaseModel):
    """
    Device identity written to a creature's EEPROM.

    USB identifiers are kept as hex strings because that is how operators
    enter them. Values that parse as 16-bit hex are normalised to four
    upper-case digits so that a decoded image compares equal to the record
    that produced it; anything else is kept verbatim and rejected by the
    encoder.

    Example:
        >>> record = IdentityRecord(
        ...     usb_product_id="1",
        ...     serial_number="SN1",
        ...     product_name="Widget",
        ... )
        >>> record.usb_product_id
        '0001'
        >>> record.logging_level
        <LogLevel.INFO: 3>
    """

    model_config = ConfigDict(frozen=True)

    usb_vendor_id: str = Field(
        default=ProtocolConstants.DEFAULT_USB_VID,
        description="USB vendor ID (hex)",
    )
    usb_product_id: str = Field(default="", description="USB product ID (hex)")
    version_major: int = Field(
        default=1,
        ge=0,
        le=ProtocolConstants.MAX_VERSION_COMPONENT,
        description="Major version",
    )
    version_minor: int = Field(
        default=0,
        ge=0,
        le=ProtocolConstants.MAX_VERSION_COMPONENT,
        description="Minor version",
    )
    logging_level: LogLevel = Field(default=LogLevel.INFO, description="Firmware log level")
    serial_number: str = Field(default="", description="USB serial number string")
    product_name: str = Field(default="", description="USB product string")
    manufacturer: str = Field(
        default=ProtocolConstants.DEFAULT_MANUFACTURER,
        description="USB manufacturer string",
    )
    custom_strings: tuple[str, ...] = Field(
        default=(),
        description="Application-defined strings, in order",
    )

    @field_validator("usb_vendor_id", "usb_product_id")
    @classmethod
    def normalize_usb_id(cls, v: str) -> str:
        """Canonicalise parseable hex IDs to four upper-case digits."""
        stripped = v.strip()
        parsed = parse_usb_id(stripped)
        if parsed is None:
            return v
        return f"{parsed:04X}"

    @property
    def vendor_id(self) -> int | None:
        """USB vendor ID as an integer, or None if not valid hex."""
        return parse_usb_id(self.usb_vendor_id)

    @property
    def product_id(self) -> int | None:
        """USB product ID as an integer, or None if not valid hex."""
        return parse_usb_id(self.usb_product_id)

    @property
    def version(self) -> str:
        """Version as "major.minor"."""
        return f"{self.version_major}.{self.version_minor}"

    @property
    def is_complete(self) -> bool:
        """
        Check whether the record is ready to be burned or exported.

        Requires valid USB IDs, non-empty serial number, product name and
        manufacturer, and no blank custom strings.
        """
        return (
            self.vendor_id is not None
            and self.product_id is not None
            and bool(self.serial_number)
            and bool(self.product_name)
            and bool(self.manufacturer)
            and all(self.custom_strings)
        )

    def __str__(self) -> str:
        return (
            f"{self.product_name or '<unnamed>'} {self.version} "
            f"({self.usb_vendor_id}:{self.usb_product_id}, sn={self.serial_number or '-'})"
        )


class ProgrammerInfo(BaseModel):
    """
    Status reported by the programmer in response to the info command.

    Decoded from a single JSON line such as
    ``{"version": "1.2.0", "free_heap": 182344, "uptime": 5521}``.
    Types are strict: a quoted number is not a valid heap size.
    """

    model_config = ConfigDict(frozen=True, strict=True)

    version: str = Field(description="Programmer firmware version")
    free_heap: int = Field(ge=0, le=0xFFFFFFFF, description="Free heap in bytes")
    uptime: int = Field(ge=0, le=0xFFFFFFFF, description="Uptime in seconds")

    def __str__(self) -> str:
        return f"{self.version} (free heap {self.free_heap} bytes, up {self.uptime}s)"
