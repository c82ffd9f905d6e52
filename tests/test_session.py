"""Tests for ProgrammerSession."""

import asyncio

import pytest

from hopburn.connection import Connection
from hopburn.exceptions import (
    DecodeError,
    NotConnectedError,
    TimeoutError,
    UnexpectedResponseError,
)
from hopburn.session import ExchangeState, ProgrammerSession
from hopburn.settings import ProgrammerSettings
from hopburn.transport.mock import MockTransport

INFO_LINE = '{"version": "1.2.0", "free_heap": 182344, "uptime": 5521}'


@pytest.fixture
def mock_transport():
    """Create a mock transport."""
    return MockTransport()


@pytest.fixture
def connection(mock_transport):
    """Create a connection over the mock transport."""
    return Connection(transport_factory=lambda port, baud: mock_transport, response_timeout=0.2)


@pytest.fixture
def session(connection):
    """Create a session with no inter-chunk delay."""
    return ProgrammerSession(connection, inter_chunk_delay=0)


async def _connect(connection):
    await connection.connect("mock://test", 19200)


class TestConstruction:
    """Tests for session configuration."""

    @pytest.mark.parametrize("chunk_size", [0, 65, -1])
    def test_invalid_chunk_size(self, connection, chunk_size):
        """Test chunk sizes outside 1-64 are rejected."""
        with pytest.raises(ValueError):
            ProgrammerSession(connection, chunk_size=chunk_size)

    def test_negative_delay(self, connection):
        """Test a negative delay is rejected."""
        with pytest.raises(ValueError):
            ProgrammerSession(connection, inter_chunk_delay=-1)

    def test_from_settings(self, connection):
        """Test transfer settings are applied."""
        settings = ProgrammerSettings(chunk_size=16, inter_chunk_delay=0.01, response_timeout=2.0)
        session = ProgrammerSession.from_settings(connection, settings)
        assert session.chunk_size == 16
        assert session.inter_chunk_delay == 0.01
        assert session.response_timeout == 2.0

    def test_response_timeout_defaults_to_connection(self, connection, session):
        """Test the connection timeout applies when none is given."""
        assert session.response_timeout == connection.response_timeout
        assert session.exchange_state == ExchangeState.IDLE


class TestQueryInfo:
    """Tests for the info exchange."""

    @pytest.mark.asyncio
    async def test_query_info(self, connection, session, mock_transport):
        """Test the status line is decoded and cached."""
        await _connect(connection)
        mock_transport.add_line(INFO_LINE)

        info = await session.query_info()

        assert info.version == "1.2.0"
        assert info.free_heap == 182344
        assert info.uptime == 5521
        assert connection.programmer_info == info
        assert mock_transport.written_data == [b"I\n"]
        assert session.exchange_state == ExchangeState.DONE

    @pytest.mark.asyncio
    async def test_non_json_lines_skipped(self, connection, session, mock_transport):
        """Test boot chatter before the JSON line is ignored."""
        await _connect(connection)
        mock_transport.add_lines("Programmer booting...", "", INFO_LINE)

        info = await session.query_info()

        assert info.version == "1.2.0"

    @pytest.mark.asyncio
    async def test_wrong_structure_is_decode_error(self, connection, session, mock_transport):
        """Test JSON with missing fields fails with DecodeError."""
        await _connect(connection)
        mock_transport.add_line('{"version": "1.2.0"}')

        with pytest.raises(DecodeError) as exc_info:
            await session.query_info()

        assert exc_info.value.line == '{"version": "1.2.0"}'
        assert session.exchange_state == ExchangeState.FAILED
        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_timeout(self, connection, mock_transport):
        """Test only non-JSON lines until the deadline is a timeout."""
        session = ProgrammerSession(connection, response_timeout=0.05)
        await _connect(connection)
        mock_transport.add_line("noise")

        with pytest.raises(TimeoutError, match="programmer info"):
            await session.query_info()

        assert session.exchange_state == ExchangeState.FAILED
        assert connection.programmer_info is None
        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_not_connected(self, session, mock_transport):
        """Test nothing is sent without a connection."""
        with pytest.raises(NotConnectedError):
            await session.query_info()
        assert mock_transport.written_data == []
        assert session.exchange_state == ExchangeState.IDLE


class TestLoadData:
    """Tests for the upload exchange."""

    @pytest.mark.asyncio
    async def test_chunked_upload(self, connection, session, mock_transport):
        """Test a 13-byte image goes out as 6 + 6 + 1 after the announce."""
        await _connect(connection)
        mock_transport.add_line("GO_AHEAD")
        mock_transport.add_line("OK")
        image = bytes(range(13))

        written = await session.load_data(image)

        assert written == 13
        assert mock_transport.written_data == [
            b"L13\n",
            image[0:6],
            image[6:12],
            image[12:13],
        ]
        assert session.exchange_state == ExchangeState.DONE

    @pytest.mark.asyncio
    async def test_exact_multiple_of_chunk_size(self, connection, session, mock_transport):
        """Test no empty trailing chunk is written."""
        await _connect(connection)
        mock_transport.add_lines("GO_AHEAD", "OK")

        await session.load_data(bytes(12))

        assert [len(data) for data in mock_transport.written_data[1:]] == [6, 6]

    @pytest.mark.asyncio
    async def test_inter_chunk_delay(self, connection, mock_transport):
        """Test chunks are spaced by at least the configured delay."""
        session = ProgrammerSession(connection, inter_chunk_delay=0.02)
        await _connect(connection)
        mock_transport.add_lines("GO_AHEAD", "OK")

        await session.load_data(bytes(13))

        chunk_times = mock_transport.write_times[1:]
        assert len(chunk_times) == 3
        gaps = [later - earlier for earlier, later in zip(chunk_times, chunk_times[1:])]
        assert all(gap >= 0.016 for gap in gaps)

    @pytest.mark.asyncio
    async def test_no_transfer_without_go_ahead(self, connection, session, mock_transport):
        """Test a refusal stops the upload before any image byte is sent."""
        await _connect(connection)
        mock_transport.add_line("ERR")

        with pytest.raises(UnexpectedResponseError) as exc_info:
            await session.load_data(bytes(13))

        assert exc_info.value.line == "ERR"
        assert exc_info.value.expected == "GO_AHEAD"
        assert mock_transport.written_data == [b"L13\n"]
        assert session.exchange_state == ExchangeState.FAILED
        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_bad_confirmation(self, connection, session, mock_transport):
        """Test anything but OK after the transfer fails the upload."""
        await _connect(connection)
        mock_transport.add_lines("GO_AHEAD", "CHECKSUM")

        with pytest.raises(UnexpectedResponseError) as exc_info:
            await session.load_data(b"HOP!")

        assert exc_info.value.expected == "OK"
        assert session.exchange_state == ExchangeState.FAILED

    @pytest.mark.asyncio
    async def test_go_ahead_timeout(self, connection, mock_transport):
        """Test a silent programmer times out at the go-ahead."""
        session = ProgrammerSession(connection, response_timeout=0.02)
        await _connect(connection)

        with pytest.raises(TimeoutError, match="GO_AHEAD"):
            await session.load_data(b"HOP!")

        assert mock_transport.written_data == [b"L4\n"]

    @pytest.mark.asyncio
    async def test_states_during_upload(self, connection, mock_transport):
        """Test the exchange passes through each upload state."""
        session = ProgrammerSession(connection, chunk_size=2, inter_chunk_delay=0)
        seen = []

        def respond(data):
            seen.append(session.exchange_state)
            if data == b"L4\n":
                return b"GO_AHEAD\n"
            if len(seen) == 3:
                return b"OK\n"
            return None

        mock_transport.set_response_callback(respond)
        await _connect(connection)

        await session.load_data(b"HOP!")

        assert seen == [ExchangeState.IDLE, ExchangeState.TRANSFERRING, ExchangeState.TRANSFERRING]
        assert session.exchange_state == ExchangeState.DONE

    @pytest.mark.asyncio
    async def test_cancel_during_transfer(self, connection, mock_transport):
        """Test cancellation mid-upload propagates and marks the exchange failed."""
        session = ProgrammerSession(connection, chunk_size=1, inter_chunk_delay=0.05)
        await _connect(connection)
        mock_transport.add_line("GO_AHEAD")

        task = asyncio.create_task(session.load_data(bytes(20)))
        while len(mock_transport.written_data) < 3:
            await asyncio.sleep(0.005)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert session.exchange_state == ExchangeState.FAILED
        assert len(mock_transport.written_data) < 21


class TestBurnVerify:
    """Tests for the burn and verify exchanges."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("method", "command"), [("burn_eeprom", b"B\n"), ("verify_eeprom", b"V\n")])
    async def test_ok(self, connection, session, mock_transport, method, command):
        """Test OK completes the command."""
        await _connect(connection)
        mock_transport.add_line("OK")

        await getattr(session, method)()

        assert mock_transport.written_data == [command]
        assert session.exchange_state == ExchangeState.DONE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["burn_eeprom", "verify_eeprom"])
    async def test_unexpected(self, connection, session, mock_transport, method):
        """Test any other line fails the command."""
        await _connect(connection)
        mock_transport.add_line("FAIL")

        with pytest.raises(UnexpectedResponseError):
            await getattr(session, method)()

        assert session.exchange_state == ExchangeState.FAILED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["burn_eeprom", "verify_eeprom"])
    async def test_not_connected(self, session, mock_transport, method):
        """Test nothing is written without a connection."""
        with pytest.raises(NotConnectedError):
            await getattr(session, method)()
        assert mock_transport.written_data == []


class TestProgram:
    """Tests for the load-burn-verify workflow."""

    @pytest.mark.asyncio
    async def test_program(self, connection, session, mock_transport):
        """Test the full workflow sends L, data, B, V in order."""
        await _connect(connection)
        mock_transport.add_lines("GO_AHEAD", "OK", "OK", "OK")

        written = await session.program(b"HOP!")

        assert written == 4
        assert mock_transport.written_data == [b"L4\n", b"HOP!", b"B\n", b"V\n"]

    @pytest.mark.asyncio
    async def test_program_stops_on_burn_failure(self, connection, session, mock_transport):
        """Test verify is not attempted after a failed burn."""
        await _connect(connection)
        mock_transport.add_lines("GO_AHEAD", "OK", "ERR")

        with pytest.raises(UnexpectedResponseError):
            await session.program(b"HOP!")

        assert mock_transport.written_data == [b"L4\n", b"HOP!", b"B\n"]


class TestResponseTimeouts:
    """Tests for timeouts on every response wait."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("method", "command"), [("burn_eeprom", b"B\n"), ("verify_eeprom", b"V\n")])
    async def test_silent_programmer(self, connection, mock_transport, method, command):
        """Test burn and verify give up on a programmer that never answers."""
        session = ProgrammerSession(connection, response_timeout=0.02)
        await _connect(connection)

        with pytest.raises(TimeoutError, match="OK"):
            await getattr(session, method)()

        assert mock_transport.written_data == [command]
        assert session.exchange_state == ExchangeState.FAILED
        assert connection.is_connected

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, connection, mock_transport):
        """Test a missing OK after the transfer times out the upload."""
        session = ProgrammerSession(connection, inter_chunk_delay=0, response_timeout=0.02)
        await _connect(connection)
        mock_transport.add_line("GO_AHEAD")

        with pytest.raises(TimeoutError, match="OK"):
            await session.load_data(bytes(13))

        assert len(mock_transport.written_data) == 4
        assert session.exchange_state == ExchangeState.FAILED

    @pytest.mark.asyncio
    async def test_late_reply_not_taken_by_next_command(self, connection, mock_transport):
        """Test an OK arriving after a timed-out burn does not answer the verify."""
        session = ProgrammerSession(connection, response_timeout=0.05)
        await _connect(connection)

        with pytest.raises(TimeoutError):
            await session.burn_eeprom()
        mock_transport.feed(b"OK\n")

        with pytest.raises(TimeoutError):
            await session.verify_eeprom()

        assert mock_transport.activity == [("write", b"B\n"), ("write", b"V\n")]

    @pytest.mark.asyncio
    async def test_stale_input_dropped_before_command(self, connection, session, mock_transport):
        """Test leftover lines are discarded, then the real answer is used."""
        await _connect(connection)
        mock_transport.feed(b"OK\nboot done\n")
        mock_transport.add_line("ERR")

        with pytest.raises(UnexpectedResponseError) as exc_info:
            await session.burn_eeprom()

        assert exc_info.value.line == "ERR"
