"""
Transport layer for programmer communication.

This package provides transport implementations for the byte stream between
the host and the EEPROM programmer.

Available transports:
- AsyncSerialTransport: Async serial port using pyserial-asyncio
- MockTransport: Mock transport for testing without hardware

Example:
    >>> from hopburn.transport import AsyncSerialTransport
    >>> async with AsyncSerialTransport("/dev/ttyACM0") as transport:
    ...     await transport.write_line("I")
    ...     status = await transport.read_line()

Testing Example:
    >>> from hopburn.transport import MockTransport
    >>> mock = MockTransport()
    >>> mock.add_line("OK")
"""

from hopburn.transport.abc import AbstractTransport
from hopburn.transport.mock import MockTransport, ScriptedMockTransport
from hopburn.transport.serial_async import AsyncSerialTransport

__all__ = [
    "AbstractTransport",
    "AsyncSerialTransport",
    "MockTransport",
    "ScriptedMockTransport",
]
