"""Tests for Connection."""

import asyncio

import pytest

from hopburn.connection import Connection, ConnectionState
from hopburn.exceptions import (
    AlreadyConnectedError,
    NotConnectedError,
    TimeoutError,
    TransportError,
)
from hopburn.models.records import ProgrammerInfo
from hopburn.transport.mock import MockTransport


@pytest.fixture
def mock_transport():
    """Create a mock transport."""
    return MockTransport(default_timeout=0.1)


@pytest.fixture
def opened_with():
    """Record the (port, baudrate) each transport is built with."""
    return []


@pytest.fixture
def connection(mock_transport, opened_with):
    """Create a connection whose factory hands out the mock transport."""

    def factory(port, baudrate):
        opened_with.append((port, baudrate))
        return mock_transport

    return Connection(transport_factory=factory, response_timeout=0.1)


class TestLifecycle:
    """Tests for connect/disconnect."""

    @pytest.mark.asyncio
    async def test_initial_state(self, connection):
        """Test a new connection is disconnected."""
        assert connection.state == ConnectionState.DISCONNECTED
        assert not connection.is_connected
        assert connection.port is None
        assert connection.programmer_info is None

    @pytest.mark.asyncio
    async def test_connect(self, connection, mock_transport, opened_with):
        """Test connecting opens the transport with the requested settings."""
        await connection.connect("/dev/ttyACM0", 115200)
        assert connection.state == ConnectionState.CONNECTED
        assert connection.port == "/dev/ttyACM0"
        assert connection.baudrate == 115200
        assert mock_transport.is_open
        assert opened_with == [("/dev/ttyACM0", 115200)]

    @pytest.mark.asyncio
    async def test_connect_twice_raises(self, connection, mock_transport):
        """Test a second connect fails without touching the open transport."""
        await connection.connect("/dev/ttyACM0", 19200)
        with pytest.raises(AlreadyConnectedError):
            await connection.connect("/dev/ttyACM1", 19200)
        assert connection.port == "/dev/ttyACM0"
        assert mock_transport.open_count == 1

    @pytest.mark.asyncio
    async def test_open_failure_returns_to_disconnected(self):
        """Test a failed open leaves the connection usable for a retry."""
        failing = MockTransport(open_error=TransportError("Permission denied"))
        connection = Connection(transport_factory=lambda port, baud: failing)

        with pytest.raises(TransportError, match="Permission denied"):
            await connection.connect("/dev/ttyACM0", 19200)
        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_factory_os_error_wrapped(self):
        """Test an OSError from the factory becomes a TransportError."""

        def factory(port, baudrate):
            raise OSError("No such file or directory")

        connection = Connection(transport_factory=factory)
        with pytest.raises(TransportError):
            await connection.connect("/dev/missing", 19200)
        assert connection.state == ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect(self, connection, mock_transport):
        """Test disconnecting closes the transport and clears state."""
        await connection.connect("/dev/ttyACM0", 19200)
        connection.programmer_info = ProgrammerInfo(version="1", free_heap=1, uptime=1)

        await connection.disconnect()

        assert connection.state == ConnectionState.DISCONNECTED
        assert not mock_transport.is_open
        assert connection.programmer_info is None
        assert connection.port is None

    @pytest.mark.asyncio
    async def test_disconnect_when_disconnected_is_noop(self, connection):
        """Test disconnecting twice is harmless."""
        states = []
        connection.add_state_listener(states.append)
        await connection.disconnect()
        await connection.disconnect()
        assert states == []

    @pytest.mark.asyncio
    async def test_reconnect(self, connection, mock_transport):
        """Test a connection can be reopened after disconnecting."""
        await connection.connect("/dev/ttyACM0", 19200)
        await connection.disconnect()
        await connection.connect("/dev/ttyACM0", 19200)
        assert connection.is_connected
        assert mock_transport.open_count == 2

    @pytest.mark.asyncio
    async def test_state_listener(self, connection):
        """Test listeners see every transition in order."""
        states = []
        connection.add_state_listener(states.append)

        await connection.connect("/dev/ttyACM0", 19200)
        await connection.disconnect()

        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
        ]

    @pytest.mark.asyncio
    async def test_cancelled_connect(self):
        """Test cancelling a connect mid-open reverts to disconnected."""
        started = asyncio.Event()

        class SlowTransport(MockTransport):
            async def open(self):
                started.set()
                await asyncio.sleep(10)

        slow = SlowTransport()
        connection = Connection(transport_factory=lambda port, baud: slow)

        task = asyncio.create_task(connection.connect("/dev/ttyACM0", 19200))
        await started.wait()
        assert connection.state == ConnectionState.CONNECTING

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert connection.state == ConnectionState.DISCONNECTED

    def test_state_descriptions(self):
        """Test display text for each state."""
        assert ConnectionState.DISCONNECTED.description == "Not connected"
        assert ConnectionState.CONNECTING.description == "Attempting to connect..."
        assert ConnectionState.CONNECTED.description == "Connected"


class TestPrimitives:
    """Tests for the request/response primitives."""

    @pytest.mark.asyncio
    async def test_send_command(self, connection, mock_transport):
        """Test commands are written as terminated lines."""
        await connection.connect("/dev/ttyACM0", 19200)
        await connection.send_command("I")
        assert mock_transport.written_data == [b"I\n"]

    @pytest.mark.asyncio
    async def test_send_bytes(self, connection, mock_transport):
        """Test raw bytes are written unchanged."""
        await connection.connect("/dev/ttyACM0", 19200)
        await connection.send_bytes(b"HOP!\n\x00")
        assert mock_transport.written_data == [b"HOP!\n\x00"]

    @pytest.mark.asyncio
    async def test_await_line(self, connection, mock_transport):
        """Test the next response line is returned."""
        await connection.connect("/dev/ttyACM0", 19200)
        mock_transport.add_line("OK")
        assert await connection.await_line() == "OK"

    @pytest.mark.asyncio
    async def test_await_line_timeout_keeps_connection(self, connection):
        """Test a timeout is reported but the connection stays open."""
        await connection.connect("/dev/ttyACM0", 19200)
        with pytest.raises(TimeoutError):
            await connection.await_line(0.01)
        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_primitives_require_connection(self, connection, mock_transport):
        """Test nothing is written while disconnected."""
        with pytest.raises(NotConnectedError):
            await connection.send_command("I")
        with pytest.raises(NotConnectedError):
            await connection.send_bytes(b"x")
        with pytest.raises(NotConnectedError):
            await connection.await_line()
        assert mock_transport.written_data == []

    @pytest.mark.asyncio
    async def test_write_failure_drops_connection(self, connection, mock_transport):
        """Test a transport error closes the connection."""
        await connection.connect("/dev/ttyACM0", 19200)
        mock_transport.set_write_error(TransportError("device unplugged"))

        with pytest.raises(TransportError):
            await connection.send_command("B")

        assert connection.state == ConnectionState.DISCONNECTED
        assert not mock_transport.is_open

    @pytest.mark.asyncio
    async def test_discard_input(self, connection, mock_transport):
        """Test stale input is dropped."""
        await connection.connect("/dev/ttyACM0", 19200)
        mock_transport.feed(b"boot chatter\n")
        connection.discard_input()
        with pytest.raises(TimeoutError):
            await connection.await_line(0.01)
