"""
Data models for hopburn.

This module contains Pydantic models for:

- The identity record burned into a creature's EEPROM
- The firmware logging level enum stored in that record
- The status line reported by the programmer
"""

from hopburn.models.records import IdentityRecord, LogLevel, ProgrammerInfo, parse_usb_id

__all__ = [
    # Records
    "IdentityRecord",
    "ProgrammerInfo",
    # Enums
    "LogLevel",
    # Helpers
    "parse_usb_id",
]
