"""
hopburn - build creature identity images and burn them to EEPROM.

This library encodes a device identity record (USB IDs, version, logging
level and strings) into the binary "HOP!" image, and drives the serial
EEPROM programmer that uploads, burns and verifies it.

Example:
    >>> from hopburn import IdentityRecord, ProgrammerSettings, SessionFacade
    >>>
    >>> async def main():
    ...     record = IdentityRecord(usb_product_id="0001", serial_number="SN1", product_name="Widget")
    ...     facade = SessionFacade(ProgrammerSettings(port="/dev/ttyACM0"))
    ...     await facade.connect()
    ...     try:
    ...         await facade.write_record(record)
    ...     finally:
    ...         await facade.disconnect()
"""

from hopburn.connection import Connection, ConnectionState
from hopburn.exceptions import (
    AlreadyConnectedError,
    BadMagicError,
    CodecError,
    DataFileError,
    DecodeError,
    HopBurnError,
    InvalidFieldError,
    NotConnectedError,
    ProtocolError,
    TimeoutError,
    TooShortError,
    TransportError,
    TruncatedError,
    UnexpectedResponseError,
    UsageError,
)
from hopburn.facade import SessionFacade, SessionSnapshot
from hopburn.models.records import IdentityRecord, LogLevel, ProgrammerInfo
from hopburn.protocol.codec import decode_record, encode_record
from hopburn.session import ExchangeState, ProgrammerSession
from hopburn.settings import ProgrammerSettings
from hopburn.transport import AbstractTransport, AsyncSerialTransport

__version__ = "0.1.0"
__all__ = [
    # Facade
    "SessionFacade",
    "SessionSnapshot",
    # Session
    "ProgrammerSession",
    "ExchangeState",
    # Connection
    "Connection",
    "ConnectionState",
    "ProgrammerSettings",
    # Models
    "IdentityRecord",
    "LogLevel",
    "ProgrammerInfo",
    # Codec
    "encode_record",
    "decode_record",
    # Exceptions
    "HopBurnError",
    "CodecError",
    "InvalidFieldError",
    "TooShortError",
    "BadMagicError",
    "TruncatedError",
    "TransportError",
    "ProtocolError",
    "UnexpectedResponseError",
    "TimeoutError",
    "DecodeError",
    "UsageError",
    "NotConnectedError",
    "AlreadyConnectedError",
    "DataFileError",
    # Transport
    "AbstractTransport",
    "AsyncSerialTransport",
    # Version
    "__version__",
]
