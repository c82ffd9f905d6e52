"""
Session facade: the single entry point for concurrent callers.

All access to the programmer goes through one asyncio.Lock, whose waiters
are woken in arrival order, so callers are serviced one at a time, first
come first served. Observable state (connection state, last status line,
last error, last programmer info) is kept in an immutable SessionSnapshot
that is replaced whole and pushed to subscribers.

Supersession rules:
- A new connect() cancels a previous connect() that has not finished; the
  same holds for disconnect().
- connect() never waits behind, or interrupts, a running protocol
  operation: if the connection is not DISCONNECTED it fails immediately
  with AlreadyConnectedError.
- Protocol operations are never cancelled by other callers.

Example:
    >>> facade = SessionFacade(ProgrammerSettings(port="/dev/ttyACM0"))
    >>> facade.subscribe(lambda snapshot: print(snapshot.status))
    >>> await facade.connect()
    >>> await facade.write_record(record)
    >>> await facade.disconnect()
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from dataclasses import dataclass, replace
from typing import Callable, TypeVar

from hopburn.connection import Connection, ConnectionState, TransportFactory
from hopburn.exceptions import AlreadyConnectedError, HopBurnError
from hopburn.models.records import IdentityRecord, ProgrammerInfo
from hopburn.protocol.codec import encode_record
from hopburn.session import ProgrammerSession
from hopburn.settings import ProgrammerSettings
from hopburn.transport.serial_async import AsyncSerialTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SessionSnapshot:
    """Observable state of the facade at one point in time."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    status: str | None = None
    error: str | None = None
    programmer_info: ProgrammerInfo | None = None


Observer = Callable[[SessionSnapshot], None]


class SessionFacade:
    """
    Serializing front end for a ProgrammerSession.

    Attributes:
        snapshot: Latest published SessionSnapshot.
        settings: Settings used for connect() defaults and transfers.
        session: The wrapped protocol session.
    """

    def __init__(
        self,
        settings: ProgrammerSettings | None = None,
        *,
        transport_factory: TransportFactory = AsyncSerialTransport,
    ) -> None:
        """
        Initialize the facade and the connection/session it owns.

        Args:
            settings: Port and transfer settings (defaults if None).
            transport_factory: Builds the transport on connect.
        """
        self._settings = settings or ProgrammerSettings()
        self._connection = Connection(
            transport_factory,
            response_timeout=self._settings.response_timeout,
        )
        self._session = ProgrammerSession.from_settings(self._connection, self._settings)
        self._lock = asyncio.Lock()
        self._snapshot = SessionSnapshot()
        self._observers: list[Observer] = []
        self._connect_task: asyncio.Task | None = None
        self._disconnect_task: asyncio.Task | None = None

        self._connection.add_state_listener(self._on_state_change)

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def settings(self) -> ProgrammerSettings:
        return self._settings

    @property
    def session(self) -> ProgrammerSession:
        return self._session

    # ===== Observation =====

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register `observer` for snapshot changes.

        The observer is called synchronously with each new snapshot.

        Returns:
            A callable that removes the observer again.
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _publish(self, **changes: object) -> None:
        self._snapshot = replace(self._snapshot, **changes)
        for observer in list(self._observers):
            observer(self._snapshot)

    def _on_state_change(self, state: ConnectionState) -> None:
        changes: dict[str, object] = {"state": state}
        if state == ConnectionState.DISCONNECTED:
            changes["programmer_info"] = None
        self._publish(**changes)

    # ===== Serialization =====

    async def _serialized(self, description: str, operation: Callable[[], Awaitable[T]]) -> T:
        async with self._lock:
            try:
                result = await operation()
            except HopBurnError as e:
                logger.error("%s failed: %s", description, e)
                self._publish(status=str(e), error=str(e))
                raise
            return result

    @staticmethod
    def _supersede(task: asyncio.Task | None) -> None:
        if task is not None and not task.done():
            logger.debug("Superseding in-flight %s", task.get_name())
            task.cancel()

    # ===== Connection lifecycle =====

    async def connect(
        self,
        port: str | None = None,
        baudrate: int | None = None,
    ) -> ProgrammerInfo | None:
        """
        Connect to the programmer and query its status.

        A failing status query is published as an error but does not undo
        the connection.

        Args:
            port: Serial port (defaults to settings.port).
            baudrate: Baud rate (defaults to settings.baudrate).

        Returns:
            The programmer info, or None if the status query failed.

        Raises:
            AlreadyConnectedError: If a connection is open or opening.
            TransportError: If the port cannot be opened.
            asyncio.CancelledError: If superseded by a newer connect().
        """
        if self._connection.state != ConnectionState.DISCONNECTED and not self._connect_pending():
            raise AlreadyConnectedError(
                f"Cannot connect: connection is {self._connection.state.name}"
            )

        port = port if port is not None else self._settings.port
        baudrate = baudrate if baudrate is not None else self._settings.baudrate

        self._supersede(self._connect_task)
        task = asyncio.ensure_future(self._connect(port, baudrate))
        task.set_name(f"connect {port}")
        self._connect_task = task
        try:
            return await task
        finally:
            if self._connect_task is task:
                self._connect_task = None

    def _connect_pending(self) -> bool:
        return self._connect_task is not None and not self._connect_task.done()

    async def _connect(self, port: str, baudrate: int) -> ProgrammerInfo | None:
        async def run() -> ProgrammerInfo | None:
            await self._connection.connect(port, baudrate)
            self._publish(
                status=f"Connected to {port} at {baudrate} baud",
                error=None,
            )
            try:
                info = await self._session.query_info()
            except asyncio.CancelledError:
                logger.info("Connect to %s cancelled during info query, closing port", port)
                await self._connection.disconnect()
                raise
            except HopBurnError as e:
                logger.error("Failed to get programmer info: %s", e)
                self._publish(error=str(e))
                return None
            logger.info("Got programmer info")
            self._publish(programmer_info=info)
            return info

        return await self._serialized(f"Connect to {port}", run)

    async def disconnect(self) -> None:
        """
        Close the connection. Safe to call when not connected.

        Raises:
            asyncio.CancelledError: If superseded by a newer disconnect().
        """
        self._supersede(self._disconnect_task)
        task = asyncio.ensure_future(self._disconnect())
        task.set_name("disconnect")
        self._disconnect_task = task
        try:
            await task
        finally:
            if self._disconnect_task is task:
                self._disconnect_task = None

    async def _disconnect(self) -> None:
        async def run() -> None:
            await self._connection.disconnect()
            self._publish(status=ConnectionState.DISCONNECTED.description)

        await self._serialized("Disconnect", run)

    # ===== Protocol operations =====

    async def query_info(self) -> ProgrammerInfo:
        """Serialized ProgrammerSession.query_info()."""

        async def run() -> ProgrammerInfo:
            info = await self._session.query_info()
            self._publish(programmer_info=info)
            return info

        return await self._serialized("Query info", run)

    async def load_data(self, image: bytes) -> int:
        """Serialized ProgrammerSession.load_data()."""

        async def run() -> int:
            written = await self._session.load_data(image)
            self._publish(status=f"Data sent successfully ({written} bytes written)", error=None)
            return written

        return await self._serialized("Load data", run)

    async def burn_eeprom(self) -> None:
        """Serialized ProgrammerSession.burn_eeprom()."""

        async def run() -> None:
            await self._session.burn_eeprom()
            self._publish(status="Programmer confirmed the EEPROM was burned", error=None)

        await self._serialized("Burn", run)

    async def verify_eeprom(self) -> None:
        """Serialized ProgrammerSession.verify_eeprom()."""

        async def run() -> None:
            await self._session.verify_eeprom()
            self._publish(status="Programmer confirmed the EEPROM was verified", error=None)

        await self._serialized("Verify", run)

    async def upload_record(self, record: IdentityRecord) -> int:
        """
        Encode `record` and upload it without burning.

        Raises:
            InvalidFieldError: If the record cannot be encoded (nothing is
                sent to the programmer).
        """
        image = encode_record(record)
        return await self.load_data(image)

    async def write_record(self, record: IdentityRecord) -> int:
        """
        Encode `record` and run load, burn and verify as one queued job.

        Holding the queue for the whole workflow keeps other callers from
        slipping a command in between the steps.

        Returns:
            Number of image bytes uploaded.
        """
        image = encode_record(record)
        logger.info("Writing %s to the EEPROM", record)

        async def run() -> int:
            self._publish(status="Uploading data", error=None)
            written = await self._session.load_data(image)
            self._publish(status="Burning EEPROM")
            await self._session.burn_eeprom()
            self._publish(status="Verifying EEPROM")
            await self._session.verify_eeprom()
            self._publish(status=f"EEPROM written and verified ({written} bytes)")
            return written

        return await self._serialized("Write record", run)

    def __repr__(self) -> str:
        return f"SessionFacade(state={self._snapshot.state.name}, port={self._connection.port})"
