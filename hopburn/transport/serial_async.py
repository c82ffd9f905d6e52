"""
Async serial transport using pyserial-asyncio.

This module provides the transport used with real hardware: the programmer
enumerates as a USB CDC serial port.

Serial Configuration:
- Baud rate: 19200 (default, configurable)
- Data bits: 8
- Parity: None
- Stop bits: 1
- Flow control: None

The programmer has no hardware or software flow control, which is why
uploads are throttled by the session rather than by the port.

Example:
    >>> transport = AsyncSerialTransport("/dev/ttyACM0")
    >>> async with transport:
    ...     await transport.write_line("I")
    ...     line = await transport.read_line(timeout=5.0)
"""

from __future__ import annotations

import asyncio
import logging

import serial
import serial_asyncio

from hopburn.exceptions import TimeoutError, TransportError
from hopburn.protocol.constants import ProtocolConstants
from hopburn.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)


class AsyncSerialTransport(AbstractTransport):
    """
    Async serial transport using pyserial-asyncio.

    Provides non-blocking serial communication using Python's asyncio
    framework. Reads are line based; writes are raw bytes.

    Attributes:
        port_name: Serial port path (e.g., "/dev/ttyACM0", "COM3").
        is_open: Whether the port is currently open.

    Example:
        >>> transport = AsyncSerialTransport("/dev/ttyACM0", baudrate=115200)
        >>> await transport.open()
        >>> try:
        ...     await transport.write_line("B")
        ...     response = await transport.read_line(timeout=5.0)
        ... finally:
        ...     await transport.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = ProtocolConstants.DEFAULT_BAUD_RATE,
        default_timeout: float = ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        """
        Initialize the async serial transport.

        Args:
            port: Serial port path (e.g., "/dev/ttyACM0", "COM3").
            baudrate: Baud rate (default: 19200).
            default_timeout: Default read timeout in seconds (default: 5.0).
        """
        self._port = port
        self._baudrate = baudrate
        self._default_timeout = default_timeout
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._serial_instance: serial.Serial | None = None

    @property
    def is_open(self) -> bool:
        """Check if the serial port is currently open."""
        return (
            self._writer is not None
            and not self._writer.is_closing()
            and self._reader is not None
        )

    @property
    def port_name(self) -> str:
        """Get the serial port path."""
        return self._port

    @property
    def baudrate(self) -> int:
        """Get the configured baud rate."""
        return self._baudrate

    async def open(self) -> None:
        """
        Open the serial port and apply the line settings.

        Raises:
            TransportError: If the port cannot be opened.
        """
        if self.is_open:
            return

        try:
            self._reader, self._writer = await serial_asyncio.open_serial_connection(
                url=self._port,
                baudrate=self._baudrate,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                bytesize=serial.EIGHTBITS,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
            # Underlying port, for buffer resets
            transport = self._writer.transport
            if hasattr(transport, "serial"):
                self._serial_instance = transport.serial

        except serial.SerialException as e:
            raise TransportError(f"Failed to open serial port {self._port}: {e}") from e
        except OSError as e:
            raise TransportError(f"OS error opening {self._port}: {e}") from e
        except ValueError as e:
            # pyserial rejects unsupported baud rates with ValueError
            raise TransportError(f"Invalid settings for {self._port}: {e}") from e

        logger.debug("Opened %s at %d baud", self._port, self._baudrate)

    async def close(self) -> None:
        """
        Close the serial port.

        Safe to call multiple times.
        """
        if self._writer is not None:
            try:
                self._writer.close()
                await self._writer.wait_closed()
            except (OSError, serial.SerialException) as e:
                logger.debug("Ignoring error while closing %s: %s", self._port, e)

        self._reader = None
        self._writer = None
        self._serial_instance = None

    async def write(self, data: bytes) -> None:
        """
        Write data to the serial port.

        Args:
            data: Bytes to transmit.

        Raises:
            TransportError: If the port is not open or write fails.
        """
        if not self.is_open:
            raise TransportError("Serial port is not open")

        try:
            self._writer.write(data)
            await self._writer.drain()
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Write failed: {e}") from e

    async def read_line(self, timeout: float | None = None) -> str:
        """
        Read one newline-terminated line from the serial port.

        Args:
            timeout: Read timeout in seconds. None uses default timeout.

        Returns:
            The decoded line without its terminator.

        Raises:
            TimeoutError: If timeout expires before a full line is received.
            TransportError: If the port is not open or read fails.
        """
        if not self.is_open:
            raise TransportError("Serial port is not open")

        effective_timeout = timeout if timeout is not None else self._default_timeout
        terminator = ProtocolConstants.LINE_TERMINATOR.encode("ascii")

        try:
            data = await asyncio.wait_for(
                self._reader.readuntil(terminator),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            raise TimeoutError(
                "Timeout waiting for a line",
                timeout_seconds=effective_timeout,
            ) from None
        except asyncio.IncompleteReadError as e:
            # Port closed before terminator was found
            if e.partial:
                raise TransportError(
                    f"Connection closed with partial line: {e.partial!r}"
                ) from e
            raise TransportError("Connection closed unexpectedly") from e
        except asyncio.LimitOverrunError as e:
            raise TransportError(f"Line too long: {e}") from e
        except (OSError, serial.SerialException) as e:
            raise TransportError(f"Read failed: {e}") from e

        return data.decode(ProtocolConstants.LINE_ENCODING, errors="replace").rstrip("\r\n")

    def discard_buffers(self) -> None:
        """
        Discard any pending data in input and output buffers.

        Clears both the serial port buffers and whatever the asyncio layer
        has already received but not yet handed to read_line().
        """
        if self._reader is not None:
            # StreamReader has no public API for dropping received data
            self._reader._buffer.clear()
        if self._serial_instance is not None:
            try:
                self._serial_instance.reset_input_buffer()
                self._serial_instance.reset_output_buffer()
            except (OSError, serial.SerialException) as e:
                logger.debug("Ignoring buffer reset error on %s: %s", self._port, e)

    def __repr__(self) -> str:
        status = "open" if self.is_open else "closed"
        return f"AsyncSerialTransport({self._port!r}, baudrate={self._baudrate}, {status})"
