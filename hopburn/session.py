"""
Programmer protocol session.

Drives the half-duplex command/response exchanges with the EEPROM
programmer on top of a Connection:

    I\\n        -> one JSON status line
    L<N>\\n     -> GO_AHEAD, then N raw bytes in throttled chunks, then OK
    B\\n        -> OK (EEPROM burned from the uploaded image)
    V\\n        -> OK (EEPROM matches the uploaded image)

Each operation walks a small state machine:

    IDLE -> AWAITING_RESPONSE -> DONE | FAILED                (I, B, V)
    IDLE -> AWAITING_GO_AHEAD -> TRANSFERRING -> AWAITING_OK
         -> DONE | FAILED                                     (L)

Any line other than the one expected at a wait point fails the operation
with UnexpectedResponseError. Every wait is bounded by the response timeout.
Input still buffered when an exchange starts is discarded before the command
is sent, so a reply that arrives after its wait timed out is never taken as
the answer to the next command.

The session does not serialize callers itself; exactly one operation may be
in flight at a time, which SessionFacade guarantees.

Cancelling load_data() mid-transfer is not supported by the programmer:
the cancellation propagates, the exchange is marked FAILED, and the
programmer is left waiting for bytes that never arrive. Reconnect (or wait
for the programmer to time out) before uploading again.

Example:
    >>> session = ProgrammerSession(connection)
    >>> info = await session.query_info()
    >>> await session.program(encode_record(record))
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum, auto
from typing import TYPE_CHECKING

from pydantic import ValidationError

from hopburn.exceptions import DecodeError, TimeoutError, UnexpectedResponseError
from hopburn.models.records import ProgrammerInfo
from hopburn.protocol.constants import Command, ProtocolConstants, Response

if TYPE_CHECKING:
    from hopburn.connection import Connection
    from hopburn.settings import ProgrammerSettings

logger = logging.getLogger(__name__)


class ExchangeState(Enum):
    """Progress of the current (or last) protocol exchange."""

    IDLE = auto()
    """No exchange started yet."""

    AWAITING_RESPONSE = auto()
    """Command sent, waiting for its single response."""

    AWAITING_GO_AHEAD = auto()
    """Load announced, waiting for the programmer to accept it."""

    TRANSFERRING = auto()
    """Writing image chunks."""

    AWAITING_OK = auto()
    """Image sent, waiting for the programmer to confirm it."""

    DONE = auto()
    """Last exchange completed successfully."""

    FAILED = auto()
    """Last exchange raised."""


class ProgrammerSession:
    """
    Protocol engine for the EEPROM programmer.

    Attributes:
        connection: The connection the session talks through.
        exchange_state: State of the current or most recent exchange.
        chunk_size: Bytes per write during an upload.
        inter_chunk_delay: Pause between chunk writes, in seconds.
    """

    def __init__(
        self,
        connection: Connection,
        *,
        chunk_size: int = ProtocolConstants.DEFAULT_CHUNK_SIZE,
        inter_chunk_delay: float = ProtocolConstants.DEFAULT_INTER_CHUNK_DELAY,
        response_timeout: float | None = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            connection: Connection to the programmer.
            chunk_size: Bytes per upload write (1-64). Must not exceed the
                programmer's receive buffer.
            inter_chunk_delay: Seconds to wait between upload writes.
            response_timeout: Timeout for every response wait. None uses the
                connection's default.

        Raises:
            ValueError: If chunk_size or inter_chunk_delay is out of range.
        """
        if not 1 <= chunk_size <= ProtocolConstants.MAX_CHUNK_SIZE:
            raise ValueError(
                f"chunk_size must be 1-{ProtocolConstants.MAX_CHUNK_SIZE}, got {chunk_size}"
            )
        if inter_chunk_delay < 0:
            raise ValueError(f"inter_chunk_delay must be >= 0, got {inter_chunk_delay}")

        self._connection = connection
        self._chunk_size = chunk_size
        self._inter_chunk_delay = inter_chunk_delay
        self._response_timeout = response_timeout
        self._exchange_state = ExchangeState.IDLE

    @classmethod
    def from_settings(cls, connection: Connection, settings: ProgrammerSettings) -> ProgrammerSession:
        """Build a session using the transfer settings of `settings`."""
        return cls(
            connection,
            chunk_size=settings.chunk_size,
            inter_chunk_delay=settings.inter_chunk_delay,
            response_timeout=settings.response_timeout,
        )

    @property
    def connection(self) -> Connection:
        return self._connection

    @property
    def exchange_state(self) -> ExchangeState:
        return self._exchange_state

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def inter_chunk_delay(self) -> float:
        return self._inter_chunk_delay

    @property
    def response_timeout(self) -> float:
        """Effective timeout for response waits, in seconds."""
        if self._response_timeout is not None:
            return self._response_timeout
        return self._connection.response_timeout

    # ===== Operations =====

    async def query_info(self) -> ProgrammerInfo:
        """
        Ask the programmer for its status.

        Lines that are not JSON at all (boot messages, stray output) are
        skipped until the timeout expires.

        Returns:
            The decoded status, also cached on the connection.

        Raises:
            NotConnectedError: If not connected.
            DecodeError: If a JSON line does not have the expected fields.
            TimeoutError: If no JSON line arrives in time.
            TransportError: On I/O failure.
        """
        with self._exchange():
            await self._connection.send_command(Command.INFO.value)
            self._exchange_state = ExchangeState.AWAITING_RESPONSE
            info = await self._read_info()
            self._connection.programmer_info = info
            logger.debug("Decoded programmer info: %s", info.version)
            return info

    async def load_data(self, image: bytes) -> int:
        """
        Upload an image to the programmer's RAM.

        Args:
            image: Encoded wire image.

        Returns:
            Number of image bytes written.

        Raises:
            NotConnectedError: If not connected.
            UnexpectedResponseError: If the programmer does not answer
                GO_AHEAD, then OK.
            TimeoutError: If either response does not arrive in time.
            TransportError: On I/O failure.
        """
        with self._exchange():
            await self._connection.send_command(f"{Command.LOAD.value}{len(image)}")
            logger.debug("Announced upload of %d bytes", len(image))

            await self._expect(Response.GO_AHEAD, ExchangeState.AWAITING_GO_AHEAD)

            self._exchange_state = ExchangeState.TRANSFERRING
            written = await self._transfer(image)

            await self._expect(Response.OK, ExchangeState.AWAITING_OK)
            logger.info("Programmer said OK (%d bytes written)", written)
            return written

    async def burn_eeprom(self) -> None:
        """
        Burn the uploaded image to the EEPROM.

        Raises:
            NotConnectedError: If not connected.
            UnexpectedResponseError: If the programmer does not answer OK.
            TimeoutError: If no response arrives in time.
            TransportError: On I/O failure.
        """
        await self._simple_command(Command.BURN)
        logger.info("Programmer confirmed the EEPROM was burned")

    async def verify_eeprom(self) -> None:
        """
        Verify the EEPROM against the uploaded image.

        Raises:
            NotConnectedError: If not connected.
            UnexpectedResponseError: If the programmer does not answer OK.
            TimeoutError: If no response arrives in time.
            TransportError: On I/O failure.
        """
        await self._simple_command(Command.VERIFY)
        logger.info("Programmer confirmed the EEPROM was verified")

    async def program(self, image: bytes) -> int:
        """
        Run the full burn workflow: load, burn, verify.

        Stops at the first failure. There is no rollback; a failed verify
        leaves whatever the burn wrote.

        Returns:
            Number of image bytes uploaded.
        """
        written = await self.load_data(image)
        await self.burn_eeprom()
        await self.verify_eeprom()
        return written

    # ===== Internals =====

    @contextmanager
    def _exchange(self) -> Iterator[None]:
        self._connection.ensure_connected()
        self._connection.discard_input()
        self._exchange_state = ExchangeState.IDLE
        try:
            yield
        except BaseException:
            self._exchange_state = ExchangeState.FAILED
            raise
        self._exchange_state = ExchangeState.DONE

    async def _simple_command(self, command: Command) -> None:
        with self._exchange():
            await self._connection.send_command(command.value)
            await self._expect(Response.OK, ExchangeState.AWAITING_RESPONSE)

    async def _expect(self, expected: Response, state: ExchangeState) -> None:
        self._exchange_state = state
        timeout = self.response_timeout
        try:
            line = await self._connection.await_line(timeout)
        except TimeoutError:
            logger.error("Timed out waiting for %s", expected.value)
            raise TimeoutError(
                f"Timeout waiting for {expected.value}",
                timeout_seconds=timeout,
            ) from None

        if line != expected.value:
            logger.warning("Unexpected response while %s: %r", state.name, line)
            raise UnexpectedResponseError(line, expected.value)

    async def _transfer(self, image: bytes) -> int:
        written = 0
        chunks = 0
        try:
            for offset in range(0, len(image), self._chunk_size):
                if offset:
                    await asyncio.sleep(self._inter_chunk_delay)
                chunk = image[offset : offset + self._chunk_size]
                await self._connection.send_bytes(chunk)
                written += len(chunk)
                chunks += 1
                if chunks % 10 == 0:
                    logger.debug("Sent %d chunks (%d/%d bytes)", chunks, written, len(image))
        except asyncio.CancelledError:
            logger.warning(
                "Upload cancelled after %d of %d bytes; programmer state is undefined",
                written,
                len(image),
            )
            raise
        return written

    async def _read_info(self) -> ProgrammerInfo:
        timeout = self.response_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                line = await self._connection.await_line(remaining)
            except TimeoutError:
                break

            try:
                return ProgrammerInfo.model_validate_json(line)
            except ValidationError as e:
                if any(error["type"] == "json_invalid" for error in e.errors()):
                    logger.warning("Ignoring non-JSON line: %r", line)
                    continue
                logger.error("Malformed programmer info: %r", line)
                raise DecodeError(f"Malformed programmer info: {line!r}", line=line) from e

        logger.error("No valid JSON received before timeout")
        raise TimeoutError(
            "Timeout while waiting for programmer info",
            timeout_seconds=timeout,
        )
