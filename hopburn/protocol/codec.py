"""
Identity record codec.

Converts an IdentityRecord to and from its binary wire image. The layout is
fixed (all multi-byte integers big-endian):

    offset  size  field
    0       4     magic "HOP!"
    4       2     USB VID
    6       2     USB PID
    8       1     version major
    9       1     version minor
    10      1     logging level (0=Fatal ... 5=Verbose)
    11      1+N   serial number (length-prefixed UTF-8)
    ...     1+M   product name
    ...     1+L   manufacturer
    ...     1+k   custom strings, repeated until the end of the buffer

There is no count field for the custom strings; the end of the buffer is the
only terminator. A corrupt trailing length byte therefore cannot be told
apart from the last string until it overruns the buffer. Changing that
requires a new magic/format version.

Example:
    >>> from hopburn.models import IdentityRecord
    >>> record = IdentityRecord(
    ...     usb_product_id="0001",
    ...     serial_number="SN1",
    ...     product_name="Widget",
    ...     manufacturer="Acme",
    ... )
    >>> image = encode_record(record)
    >>> image[:4]
    b'HOP!'
    >>> decode_record(image) == record
    True
"""

from __future__ import annotations

import logging
import struct

from pydantic import ValidationError

from hopburn.exceptions import BadMagicError, InvalidFieldError, TooShortError
from hopburn.models.records import IdentityRecord, LogLevel, parse_usb_id
from hopburn.protocol.constants import ProtocolConstants
from hopburn.protocol.reader import ByteReader

logger = logging.getLogger(__name__)

_HEADER = struct.Struct(">4sHHBBB")


def _encode_string(field: str, value: str) -> bytes:
    data = value.encode("utf-8")
    if len(data) > ProtocolConstants.MAX_STRING_LENGTH:
        raise InvalidFieldError(
            field,
            f"{len(data)} bytes exceeds the {ProtocolConstants.MAX_STRING_LENGTH}-byte limit",
        )
    return bytes([len(data)]) + data


def _decode_string(field: str, data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise InvalidFieldError(field, f"invalid UTF-8: {e.reason}") from e


def _usb_id(field: str, value: str) -> int:
    parsed = parse_usb_id(value)
    if parsed is None:
        raise InvalidFieldError(field, f"{value!r} is not a 16-bit hexadecimal value")
    return parsed


def encode_record(record: IdentityRecord) -> bytes:
    """
    Encode an identity record into its wire image.

    Args:
        record: Record to encode.

    Returns:
        The complete image, starting with the HOP! magic number.

    Raises:
        InvalidFieldError: If a USB ID is not valid hex or any string is
            longer than 255 bytes once UTF-8 encoded.
    """
    vid = _usb_id("usb_vendor_id", record.usb_vendor_id)
    pid = _usb_id("usb_product_id", record.usb_product_id)

    parts = [
        _HEADER.pack(
            ProtocolConstants.MAGIC,
            vid,
            pid,
            record.version_major,
            record.version_minor,
            int(record.logging_level),
        ),
        _encode_string("serial_number", record.serial_number),
        _encode_string("product_name", record.product_name),
        _encode_string("manufacturer", record.manufacturer),
    ]
    for index, custom in enumerate(record.custom_strings):
        parts.append(_encode_string(f"custom_strings[{index}]", custom))

    image = b"".join(parts)
    logger.debug("Encoded identity record: %d bytes", len(image))
    return image


def decode_record(data: bytes) -> IdentityRecord:
    """
    Decode a wire image into an identity record.

    Decoding is all-or-nothing: either a complete record is returned or an
    exception is raised.

    Args:
        data: Image bytes, e.g. read back from a .bin file.

    Returns:
        The decoded record.

    Raises:
        TooShortError: If fewer than 8 bytes are given.
        BadMagicError: If the image does not start with "HOP!".
        TruncatedError: If any field or length prefix runs past the end.
        InvalidFieldError: If a string is not valid UTF-8 or a value is out
            of range for the record.
    """
    if len(data) < ProtocolConstants.MIN_IMAGE_SIZE:
        raise TooShortError(len(data), ProtocolConstants.MIN_IMAGE_SIZE)

    reader = ByteReader(data)
    magic = reader.read_bytes(len(ProtocolConstants.MAGIC))
    if magic != ProtocolConstants.MAGIC:
        raise BadMagicError(magic)

    vid = reader.read_uint16()
    pid = reader.read_uint16()
    major = reader.read_byte()
    minor = reader.read_byte()
    level = reader.read_byte()

    serial_number = _decode_string("serial_number", reader.read_prefixed())
    product_name = _decode_string("product_name", reader.read_prefixed())
    manufacturer = _decode_string("manufacturer", reader.read_prefixed())

    custom_strings: list[str] = []
    while not reader.is_at_end():
        field = f"custom_strings[{len(custom_strings)}]"
        custom_strings.append(_decode_string(field, reader.read_prefixed()))

    try:
        logging_level = LogLevel(level)
    except ValueError as e:
        raise InvalidFieldError("logging_level", f"unknown level {level}") from e

    try:
        record = IdentityRecord(
            usb_vendor_id=f"{vid:04X}",
            usb_product_id=f"{pid:04X}",
            version_major=major,
            version_minor=minor,
            logging_level=logging_level,
            serial_number=serial_number,
            product_name=product_name,
            manufacturer=manufacturer,
            custom_strings=tuple(custom_strings),
        )
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise InvalidFieldError(field, error["msg"]) from e

    logger.debug(
        "Decoded identity record: %d bytes, %d custom strings",
        len(data),
        len(custom_strings),
    )
    return record
