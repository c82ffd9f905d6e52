"""
Connection to the programmer.

The connection owns the transport and its lifecycle:

    DISCONNECTED -> connect() -> CONNECTING -> CONNECTED
    CONNECTING   -> open fails / cancelled -> DISCONNECTED
    CONNECTED    -> disconnect() or transport failure -> DISCONNECTED

It exposes the primitives the session builds the protocol on: send a
command line, send raw bytes, and wait (bounded) for a response line.
Exactly one transport is open at a time and nothing else holds a reference
to it.

Example:
    >>> connection = Connection()
    >>> await connection.connect("/dev/ttyACM0", 19200)
    >>> await connection.send_command("I")
    >>> line = await connection.await_line()
    >>> await connection.disconnect()
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable

from hopburn.exceptions import AlreadyConnectedError, NotConnectedError, TransportError
from hopburn.protocol.constants import ProtocolConstants
from hopburn.transport.serial_async import AsyncSerialTransport

if TYPE_CHECKING:
    from hopburn.models.records import ProgrammerInfo
    from hopburn.transport.abc import AbstractTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, int], "AbstractTransport"]
"""Builds a transport for (port, baudrate)."""

StateListener = Callable[["ConnectionState"], None]


class ConnectionState(Enum):
    """Programmer connection states."""

    DISCONNECTED = auto()
    """No transport open."""

    CONNECTING = auto()
    """Opening the transport."""

    CONNECTED = auto()
    """Transport open and ready for commands."""

    @property
    def description(self) -> str:
        """Status text for display."""
        return _STATE_DESCRIPTIONS[self]


_STATE_DESCRIPTIONS = {
    ConnectionState.DISCONNECTED: "Not connected",
    ConnectionState.CONNECTING: "Attempting to connect...",
    ConnectionState.CONNECTED: "Connected",
}


class Connection:
    """
    Owner of the programmer transport.

    Attributes:
        state: Current connection state.
        programmer_info: Last status reported by the programmer, cleared on
            disconnect.
        response_timeout: Default wait for a response line, in seconds.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = AsyncSerialTransport,
        response_timeout: float = ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
    ) -> None:
        """
        Initialize the connection.

        Args:
            transport_factory: Callable building a transport from
                (port, baudrate). Defaults to AsyncSerialTransport.
            response_timeout: Default timeout for await_line().
        """
        self._transport_factory = transport_factory
        self._response_timeout = response_timeout
        self._transport: AbstractTransport | None = None
        self._state = ConnectionState.DISCONNECTED
        self._port: str | None = None
        self._baudrate: int | None = None
        self._programmer_info: ProgrammerInfo | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the transport is open and ready."""
        return self._state == ConnectionState.CONNECTED

    @property
    def port(self) -> str | None:
        """Port of the current connection, if any."""
        return self._port

    @property
    def baudrate(self) -> int | None:
        """Baud rate of the current connection, if any."""
        return self._baudrate

    @property
    def response_timeout(self) -> float:
        """Default response timeout in seconds."""
        return self._response_timeout

    @property
    def programmer_info(self) -> ProgrammerInfo | None:
        """Last programmer status, or None."""
        return self._programmer_info

    @programmer_info.setter
    def programmer_info(self, info: ProgrammerInfo | None) -> None:
        self._programmer_info = info

    def add_state_listener(self, listener: StateListener) -> None:
        """Call `listener(state)` after every state change."""
        self._listeners.append(listener)

    def _set_state(self, state: ConnectionState) -> None:
        if state == self._state:
            return
        logger.debug("Connection state %s -> %s", self._state.name, state.name)
        self._state = state
        for listener in self._listeners:
            listener(state)

    # ===== Lifecycle =====

    async def connect(self, port: str, baudrate: int) -> None:
        """
        Open the transport to the programmer.

        Args:
            port: Serial port path.
            baudrate: Baud rate to apply.

        Raises:
            AlreadyConnectedError: If not currently disconnected.
            TransportError: If the port cannot be opened. The state is back
                to DISCONNECTED when this is raised.
        """
        if self._state != ConnectionState.DISCONNECTED:
            raise AlreadyConnectedError(
                f"Cannot connect: connection is {self._state.name}"
            )

        self._set_state(ConnectionState.CONNECTING)
        logger.debug("Connecting to %s at %d baud", port, baudrate)

        transport: AbstractTransport | None = None
        try:
            transport = self._transport_factory(port, baudrate)
            await transport.open()
        except TransportError as e:
            logger.error("Failed to open %s: %s", port, e)
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except asyncio.CancelledError:
            logger.info("Connect to %s cancelled", port)
            if transport is not None:
                await transport.close()
            self._set_state(ConnectionState.DISCONNECTED)
            raise
        except (OSError, ValueError) as e:
            logger.error("Failed to open %s: %s", port, e)
            self._set_state(ConnectionState.DISCONNECTED)
            raise TransportError(f"Failed to open {port}: {e}") from e

        self._transport = transport
        self._port = port
        self._baudrate = baudrate
        self._set_state(ConnectionState.CONNECTED)
        logger.info("Connected to %s at %d baud", port, baudrate)

    async def disconnect(self) -> None:
        """
        Close the transport and forget the programmer status.

        Safe to call when already disconnected.
        """
        if self._transport is None and self._state == ConnectionState.DISCONNECTED:
            logger.debug("Already disconnected")
            return

        transport = self._transport
        self._transport = None
        self._programmer_info = None
        try:
            if transport is not None:
                logger.debug("Closing %s", transport.port_name)
                await transport.close()
        finally:
            self._port = None
            self._baudrate = None
            self._set_state(ConnectionState.DISCONNECTED)
            logger.info("Disconnected")

    def ensure_connected(self) -> None:
        """
        Verify the connection is ready for a protocol operation.

        Raises:
            NotConnectedError: If not in the CONNECTED state.
        """
        if self._state != ConnectionState.CONNECTED or self._transport is None:
            raise NotConnectedError(f"Not connected (state: {self._state.name})")

    # ===== Request/response primitives =====

    async def send_command(self, command: str) -> None:
        """
        Write one command line.

        Raises:
            NotConnectedError: If not connected.
            TransportError: If the write fails; the connection is dropped.
        """
        self.ensure_connected()
        logger.debug("-> %r", command)
        try:
            await self._transport.write_line(command)
        except TransportError as e:
            await self._drop(e)
            raise

    async def send_bytes(self, data: bytes) -> None:
        """
        Write raw bytes.

        Raises:
            NotConnectedError: If not connected.
            TransportError: If the write fails; the connection is dropped.
        """
        self.ensure_connected()
        try:
            await self._transport.write(data)
        except TransportError as e:
            await self._drop(e)
            raise

    async def await_line(self, timeout: float | None = None) -> str:
        """
        Wait for the next response line.

        Args:
            timeout: Seconds to wait. None uses response_timeout.

        Returns:
            The line without its terminator.

        Raises:
            NotConnectedError: If not connected.
            TimeoutError: If no line arrives in time (connection kept).
            TransportError: If the read fails; the connection is dropped.
        """
        self.ensure_connected()
        effective_timeout = timeout if timeout is not None else self._response_timeout
        try:
            line = await self._transport.read_line(effective_timeout)
        except TransportError as e:
            await self._drop(e)
            raise
        logger.debug("<- %r", line)
        return line

    def discard_input(self) -> None:
        """
        Drop unread input before a new exchange.

        Anything still buffered at this point (boot chatter, or a reply that
        arrived after its wait timed out) cannot belong to the next command.
        """
        if self._transport is not None:
            logger.debug("Discarding pending input on %s", self._port)
            self._transport.discard_buffers()

    async def _drop(self, error: TransportError) -> None:
        """Transport failures are fatal to the connection."""
        logger.error("Transport failure on %s: %s", self._port, error)
        await self.disconnect()

    def __repr__(self) -> str:
        port = self._port or "None"
        return f"Connection(state={self._state.name}, port={port})"
