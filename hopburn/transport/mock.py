"""
Mock transport for testing.

This module provides a mock transport that lets the session and facade be
exercised without a programmer attached. Responses can be queued up front,
generated from a callback when data is written, or scripted as
request/response pairs.

Unlike a queue that fails immediately when empty, read_line waits for data
until its timeout expires, so responses can also be fed from another task
while a read is pending.

Example:
    >>> from hopburn.transport import MockTransport
    >>> mock = MockTransport()
    >>> mock.add_line('{"version": "1.0.0", "free_heap": 1024, "uptime": 5}')
    >>>
    >>> async with mock:
    ...     await mock.write_line("I")
    ...     line = await mock.read_line()
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from typing import Callable

from hopburn.exceptions import TimeoutError, TransportError
from hopburn.protocol.constants import ProtocolConstants
from hopburn.transport.abc import AbstractTransport

_NEWLINE = ProtocolConstants.LINE_TERMINATOR.encode("ascii")


class MockTransport(AbstractTransport):
    """
    Mock transport for testing without hardware.

    Records every write (with a monotonic timestamp) and returns queued or
    generated responses line by line.

    Attributes:
        written_data: List of all byte strings written to the transport.
        write_times: time.monotonic() value of each write.
        activity: Interleaved log of ("write", bytes) and ("read", str).

    Example:
        >>> mock = MockTransport()
        >>> mock.add_lines("GO_AHEAD", "OK")
        >>>
        >>> async with mock:
        ...     await mock.write_line("L2")
        ...     assert await mock.read_line() == "GO_AHEAD"
        ...     assert mock.written_data == [b"L2\\n"]
    """

    def __init__(
        self,
        port_name: str = "mock://test",
        default_timeout: float = 1.0,
        *,
        open_error: Exception | None = None,
    ) -> None:
        """
        Initialize the mock transport.

        Args:
            port_name: Identifier for the mock transport.
            default_timeout: Default timeout for read operations.
            open_error: Exception raised by open(), to simulate a bad port.
        """
        self._port_name = port_name
        self._default_timeout = default_timeout
        self._open_error = open_error
        self._write_error: Exception | None = None
        self._is_open = False
        self._open_count = 0
        self._responses: deque[bytes] = deque()
        self._written_data: list[bytes] = []
        self._write_times: list[float] = []
        self._activity: list[tuple[str, bytes | str]] = []
        self._read_buffer = bytearray()
        self._data_ready = asyncio.Event()
        self._response_callback: Callable[[bytes], bytes | None] | None = None

    @property
    def is_open(self) -> bool:
        """Check if the mock transport is open."""
        return self._is_open

    @property
    def port_name(self) -> str:
        """Get the mock port name."""
        return self._port_name

    @property
    def open_count(self) -> int:
        """Number of successful open() calls."""
        return self._open_count

    @property
    def written_data(self) -> list[bytes]:
        """Get all data written to the transport."""
        return self._written_data.copy()

    @property
    def write_times(self) -> list[float]:
        """Get the monotonic timestamp of each write."""
        return self._write_times.copy()

    @property
    def activity(self) -> list[tuple[str, bytes | str]]:
        """Get the interleaved write/read log."""
        return self._activity.copy()

    @property
    def last_written(self) -> bytes | None:
        """Get the most recently written data."""
        return self._written_data[-1] if self._written_data else None

    def add_response(self, response: bytes) -> None:
        """
        Add raw response bytes to the queue.

        Queued responses model what the "device" sends next: they are
        released to the read buffer only as read operations need them, so
        discard_buffers() does not drop them. Use feed() for data that has
        already arrived.

        Args:
            response: Bytes the "device" sends next.
        """
        self._responses.append(bytes(response))
        self._data_ready.set()

    def add_line(self, line: str) -> None:
        """Queue a response line; the terminator is appended."""
        self.add_response(line.encode(ProtocolConstants.LINE_ENCODING) + _NEWLINE)

    def add_lines(self, *lines: str) -> None:
        """Queue several response lines."""
        for line in lines:
            self.add_line(line)

    def set_response_callback(
        self,
        callback: Callable[[bytes], bytes | None] | None,
    ) -> None:
        """
        Set a callback to dynamically generate responses.

        The callback receives each written chunk and returns bytes to make
        available for reading, or None for no response.

        Args:
            callback: Function that takes written bytes and returns response.
        """
        self._response_callback = callback

    def set_write_error(self, error: Exception | None) -> None:
        """Make every following write raise `error` (None to clear)."""
        self._write_error = error

    def feed(self, data: bytes) -> None:
        """Make `data` readable immediately, as if it had already been received."""
        self._read_buffer.extend(data)
        self._data_ready.set()

    def clear(self) -> None:
        """Clear all written data and pending responses."""
        self._written_data.clear()
        self._write_times.clear()
        self._activity.clear()
        self._responses.clear()
        self._read_buffer.clear()

    def clear_written(self) -> None:
        """Clear only the written data history."""
        self._written_data.clear()
        self._write_times.clear()

    async def open(self) -> None:
        """Open the mock transport."""
        if self._open_error is not None:
            raise self._open_error
        if self._is_open:
            raise TransportError("Mock transport already open")
        self._is_open = True
        self._open_count += 1

    async def close(self) -> None:
        """Close the mock transport."""
        self._is_open = False

    async def write(self, data: bytes) -> None:
        """
        Write data to the mock transport.

        Records the written data and optionally triggers response callback.

        Args:
            data: Bytes to write.

        Raises:
            TransportError: If transport is not open.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")
        if self._write_error is not None:
            raise self._write_error

        self._written_data.append(bytes(data))
        self._write_times.append(time.monotonic())
        self._activity.append(("write", bytes(data)))

        if self._response_callback:
            response = self._response_callback(bytes(data))
            if response is not None:
                self.feed(response)

        # Yield like a real drain() would
        await asyncio.sleep(0)

    def _take_line(self) -> str | None:
        while _NEWLINE not in self._read_buffer and self._responses:
            self._read_buffer.extend(self._responses.popleft())

        if _NEWLINE not in self._read_buffer:
            return None

        idx = self._read_buffer.index(_NEWLINE)
        raw = bytes(self._read_buffer[:idx])
        del self._read_buffer[: idx + 1]
        return raw.decode(ProtocolConstants.LINE_ENCODING, errors="replace").rstrip("\r")

    async def read_line(self, timeout: float | None = None) -> str:
        """
        Read one line, waiting up to `timeout` for it to be queued.

        Args:
            timeout: Read timeout in seconds. None uses the default.

        Returns:
            Line without terminator.

        Raises:
            TimeoutError: If no complete line is available in time.
            TransportError: If transport is not open.
        """
        if not self._is_open:
            raise TransportError("Mock transport not open")

        effective_timeout = timeout if timeout is not None else self._default_timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + effective_timeout

        # Hand control to other tasks, as a real read would
        await asyncio.sleep(0)

        while True:
            line = self._take_line()
            if line is not None:
                self._activity.append(("read", line))
                return line

            self._data_ready.clear()
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise TimeoutError(
                    "No mock response available",
                    timeout_seconds=effective_timeout,
                )
            try:
                await asyncio.wait_for(self._data_ready.wait(), remaining)
            except asyncio.TimeoutError:
                raise TimeoutError(
                    "No mock response available",
                    timeout_seconds=effective_timeout,
                ) from None

            if not self._is_open:
                raise TransportError("Mock transport closed while reading")

    def discard_buffers(self) -> None:
        """Discard already-received data; queued responses are kept."""
        self._read_buffer.clear()

    def assert_written(self, expected: bytes, index: int = -1) -> None:
        """
        Assert that specific data was written.

        Args:
            expected: Expected bytes.
            index: Index in written_data list (-1 for last).

        Raises:
            AssertionError: If data doesn't match.
        """
        if not self._written_data:
            raise AssertionError("No data written to mock transport")

        actual = self._written_data[index]
        if actual != expected:
            raise AssertionError(f"Written data mismatch: expected {expected!r}, got {actual!r}")

    def assert_write_count(self, expected: int) -> None:
        """
        Assert number of write operations.

        Args:
            expected: Expected number of writes.

        Raises:
            AssertionError: If count doesn't match.
        """
        actual = len(self._written_data)
        if actual != expected:
            raise AssertionError(f"Write count mismatch: expected {expected}, got {actual}")

    def __repr__(self) -> str:
        status = "open" if self._is_open else "closed"
        return f"MockTransport({self._port_name!r}, {status}, writes={len(self._written_data)})"


class ScriptedMockTransport(MockTransport):
    """
    Mock transport with scripted request/response pairs.

    Each write consumes the next step of the script; the step's response
    becomes readable immediately. Steps with request=None match any write,
    which is how raw upload chunks are usually scripted.

    Example:
        >>> mock = ScriptedMockTransport()
        >>> mock.expect(request=b"B\\n", response=b"OK\\n")
        >>> mock.expect(request=b"V\\n", response=b"OK\\n")
    """

    def __init__(self, port_name: str = "mock://scripted", default_timeout: float = 1.0) -> None:
        super().__init__(port_name, default_timeout)
        self._script: list[tuple[bytes | None, bytes]] = []
        self._script_index = 0

    @property
    def script_complete(self) -> bool:
        """True once every scripted step has been consumed."""
        return self._script_index >= len(self._script)

    def expect(
        self,
        response: bytes,
        request: bytes | None = None,
    ) -> None:
        """
        Add an expected request/response pair.

        Args:
            response: Response to return (b"" for none).
            request: Expected request (None to match any).
        """
        self._script.append((request, response))

    async def write(self, data: bytes) -> None:
        """Write with script validation."""
        if not self._is_open:
            raise TransportError("Mock transport not open")

        self._written_data.append(bytes(data))
        self._write_times.append(time.monotonic())
        self._activity.append(("write", bytes(data)))

        if self._script_index < len(self._script):
            expected_request, response = self._script[self._script_index]

            if expected_request is not None and data != expected_request:
                raise AssertionError(
                    f"Script mismatch at step {self._script_index}: "
                    f"expected {expected_request!r}, got {data!r}"
                )

            if response:
                self.feed(response)
            self._script_index += 1

        await asyncio.sleep(0)

    def reset_script(self) -> None:
        """Reset script to beginning."""
        self._script_index = 0
        self._read_buffer.clear()

    def clear_script(self) -> None:
        """Clear all scripted expectations."""
        self._script.clear()
        self._script_index = 0
