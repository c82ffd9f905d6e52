"""
Abstract transport interface for programmer communication.

This module defines the abstract base class for all transport
implementations. Transports handle the byte stream to the programmer; they
know nothing about commands or images.

The transport layer is responsible for:
- Opening/closing the physical connection
- Writing raw bytes and text lines
- Splitting the incoming stream into lines
- Timeout handling

Implementations:
- AsyncSerialTransport: pyserial-asyncio based serial port
- MockTransport: For testing without hardware
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from hopburn.protocol.constants import ProtocolConstants

if TYPE_CHECKING:
    from types import TracebackType


class AbstractTransport(ABC):
    """
    Abstract base class for programmer transports.

    Transports provide async write and line-read operations. The programmer
    protocol is line oriented in the device-to-host direction, so reads
    always return one complete line with its terminator removed.

    Transports support the async context manager protocol:

        async with AsyncSerialTransport("/dev/ttyACM0") as transport:
            await transport.write_line("I")
            line = await transport.read_line(timeout=5.0)

    Attributes:
        is_open: Whether the transport connection is currently open.
        port_name: Identifier for the transport (e.g., serial port name).
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """
        Check if the transport connection is currently open.

        Returns:
            True if connected and ready for I/O, False otherwise.
        """
        ...

    @property
    @abstractmethod
    def port_name(self) -> str:
        """
        Get the transport identifier.

        Returns:
            Port name or identifier string (e.g., "/dev/ttyACM0", "COM3").
        """
        ...

    @abstractmethod
    async def open(self) -> None:
        """
        Open the transport connection.

        Raises:
            TransportError: If the connection cannot be established.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """
        Close the transport connection.

        Safe to call multiple times (idempotent).
        """
        ...

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write raw bytes to the transport.

        Args:
            data: Bytes to send.

        Raises:
            TransportError: If the transport is not open or write fails.
        """
        ...

    async def write_line(self, text: str) -> None:
        """
        Write a text line followed by the line terminator.

        Args:
            text: Line content without terminator.

        Raises:
            TransportError: If the transport is not open or write fails.
        """
        line = text + ProtocolConstants.LINE_TERMINATOR
        await self.write(line.encode(ProtocolConstants.LINE_ENCODING))

    @abstractmethod
    async def read_line(self, timeout: float | None = None) -> str:
        """
        Read one line from the transport.

        Args:
            timeout: Read timeout in seconds. None uses transport default.

        Returns:
            The line without its terminator (trailing CR/LF removed).

        Raises:
            TimeoutError: If no complete line arrives before the timeout.
            TransportError: If the transport is not open or read fails.
        """
        ...

    @abstractmethod
    def discard_buffers(self) -> None:
        """
        Discard any pending data in input and output buffers.

        Useful for dropping stale lines before a new exchange.
        """
        ...

    async def __aenter__(self) -> AbstractTransport:
        """Async context manager entry - opens the transport."""
        await self.open()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Async context manager exit - closes the transport."""
        await self.close()
