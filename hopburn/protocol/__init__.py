"""
Protocol layer for the EEPROM programmer.

This package contains the wire contract:
- Command letters, response tokens and protocol constants
- Bounds-checked reading of binary images (reader)
- Identity record encoding/decoding (codec)
- Saving images as .bin and C source files (export)

The codec and export modules depend on the record models and are imported
from their own modules (or from the top-level ``hopburn`` package).
"""

from hopburn.protocol.constants import Command, ProtocolConstants, Response
from hopburn.protocol.reader import ByteReader

__all__ = [
    # Constants
    "Command",
    "Response",
    "ProtocolConstants",
    # Reading
    "ByteReader",
]
