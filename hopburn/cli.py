"""Typer CLI entrypoint."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import typer
from pydantic import ValidationError

from hopburn.exceptions import HopBurnError
from hopburn.facade import SessionFacade
from hopburn.models.records import IdentityRecord, LogLevel, ProgrammerInfo
from hopburn.protocol.codec import encode_record
from hopburn.protocol.constants import ProtocolConstants
from hopburn.protocol.export import load_record, render_c_source, save_record
from hopburn.settings import ProgrammerSettings
from hopburn.transport.serial_async import AsyncSerialTransport

app = typer.Typer(help="Build creature identity images and burn them with the EEPROM programmer")


@app.callback()
def main(
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for info, -vv for debug"),
) -> None:
    """Configure logging for all commands."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


def _build_record(
    vid: str,
    pid: str,
    major: int,
    minor: int,
    log_level: int,
    serial_number: str,
    product: str,
    manufacturer: str,
    custom: list[str] | None,
) -> IdentityRecord:
    try:
        record = IdentityRecord(
            usb_vendor_id=vid,
            usb_product_id=pid,
            version_major=major,
            version_minor=minor,
            logging_level=log_level,
            serial_number=serial_number,
            product_name=product,
            manufacturer=manufacturer,
            custom_strings=tuple(custom or ()),
        )
    except ValidationError as exc:
        raise _fail(str(exc)) from None
    if not record.is_complete:
        raise _fail(
            "Record is incomplete: VID/PID must be hex and serial number, product, "
            "manufacturer and custom strings must not be empty"
        )
    return record


def _build_facade(port: str, baud: int, timeout: float) -> SessionFacade:
    settings = ProgrammerSettings(port=port, baudrate=baud, response_timeout=timeout)
    return SessionFacade(settings, transport_factory=AsyncSerialTransport)


def _print_record(record: IdentityRecord) -> None:
    typer.echo(f"USB VID:       {record.usb_vendor_id}")
    typer.echo(f"USB PID:       {record.usb_product_id}")
    typer.echo(f"Version:       {record.version}")
    typer.echo(f"Logging level: {record.logging_level.label} ({int(record.logging_level)})")
    typer.echo(f"Serial number: {record.serial_number}")
    typer.echo(f"Product name:  {record.product_name}")
    typer.echo(f"Manufacturer:  {record.manufacturer}")
    for index, value in enumerate(record.custom_strings, start=1):
        typer.echo(f"Custom {index}:      {value}")


@app.command("encode")
def encode(
    output: Path = typer.Argument(..., help="Destination .bin file"),
    pid: str = typer.Option(..., "--pid", help="USB product ID (hex)"),
    serial_number: str = typer.Option(..., "--serial", help="Serial number"),
    product: str = typer.Option(..., "--product", help="Product name"),
    vid: str = typer.Option(ProtocolConstants.DEFAULT_USB_VID, "--vid", help="USB vendor ID (hex)"),
    major: int = typer.Option(1, "--major", min=0, max=99),
    minor: int = typer.Option(0, "--minor", min=0, max=99),
    log_level: int = typer.Option(int(LogLevel.INFO), "--log-level", min=0, max=5, help="0=Fatal ... 5=Verbose"),
    manufacturer: str = typer.Option(ProtocolConstants.DEFAULT_MANUFACTURER, "--manufacturer"),
    custom: list[str] | None = typer.Option(None, "--custom", help="Custom string (repeatable)"),
    c_file: Path | None = typer.Option(None, "--c-file", help="Also write a C array source file"),
) -> None:
    """Encode an identity record into a .bin image (and optionally C source)."""
    record = _build_record(vid, pid, major, minor, log_level, serial_number, product, manufacturer, custom)
    try:
        image = save_record(record, output, c_file)
    except HopBurnError as exc:
        raise _fail(str(exc)) from None
    typer.echo(f"Wrote {len(image)} bytes to {output}")
    if c_file is not None:
        typer.echo(f"Wrote C source to {c_file}")


@app.command("decode")
def decode(
    path: Path = typer.Argument(..., help=".bin image to read"),
    c_source: bool = typer.Option(False, "--c-source", help="Print the image as C source"),
) -> None:
    """Decode a .bin image and print its fields."""
    try:
        record = load_record(path)
    except HopBurnError as exc:
        raise _fail(str(exc)) from None
    _print_record(record)
    if c_source:
        typer.echo(render_c_source(encode_record(record)), nl=False)


async def _query_info(facade: SessionFacade) -> ProgrammerInfo | None:
    try:
        return await facade.connect()
    finally:
        await facade.disconnect()


@app.command("info")
def info(
    port: str = typer.Option(..., "--port", envvar="HOPBURN_PORT", help="Programmer serial port"),
    baud: int = typer.Option(ProtocolConstants.DEFAULT_BAUD_RATE, "--baud", envvar="HOPBURN_BAUD"),
    timeout: float = typer.Option(
        ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT, "--timeout", envvar="HOPBURN_TIMEOUT"
    ),
) -> None:
    """Connect to the programmer and print its status."""
    facade = _build_facade(port, baud, timeout)
    try:
        programmer = asyncio.run(_query_info(facade))
    except HopBurnError as exc:
        raise _fail(str(exc)) from None
    if programmer is None:
        raise _fail(facade.snapshot.error or "No programmer info received")
    typer.echo(f"Version:   {programmer.version}")
    typer.echo(f"Free heap: {programmer.free_heap} bytes")
    typer.echo(f"Uptime:    {programmer.uptime} s")


async def _burn(facade: SessionFacade, record: IdentityRecord) -> int | None:
    programmer = await facade.connect()
    try:
        if programmer is None:
            return None
        return await facade.write_record(record)
    finally:
        await facade.disconnect()


@app.command("burn")
def burn(
    port: str = typer.Option(..., "--port", envvar="HOPBURN_PORT", help="Programmer serial port"),
    baud: int = typer.Option(ProtocolConstants.DEFAULT_BAUD_RATE, "--baud", envvar="HOPBURN_BAUD"),
    timeout: float = typer.Option(
        ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT, "--timeout", envvar="HOPBURN_TIMEOUT"
    ),
    from_file: Path | None = typer.Option(None, "--from-file", help="Burn an existing .bin image"),
    pid: str = typer.Option("", "--pid", help="USB product ID (hex)"),
    serial_number: str = typer.Option("", "--serial", help="Serial number"),
    product: str = typer.Option("", "--product", help="Product name"),
    vid: str = typer.Option(ProtocolConstants.DEFAULT_USB_VID, "--vid", help="USB vendor ID (hex)"),
    major: int = typer.Option(1, "--major", min=0, max=99),
    minor: int = typer.Option(0, "--minor", min=0, max=99),
    log_level: int = typer.Option(int(LogLevel.INFO), "--log-level", min=0, max=5, help="0=Fatal ... 5=Verbose"),
    manufacturer: str = typer.Option(ProtocolConstants.DEFAULT_MANUFACTURER, "--manufacturer"),
    custom: list[str] | None = typer.Option(None, "--custom", help="Custom string (repeatable)"),
) -> None:
    """Upload a record to the programmer, burn it and verify the EEPROM."""
    if from_file is not None:
        try:
            record = load_record(from_file)
        except HopBurnError as exc:
            raise _fail(str(exc)) from None
    else:
        record = _build_record(vid, pid, major, minor, log_level, serial_number, product, manufacturer, custom)

    facade = _build_facade(port, baud, timeout)
    try:
        written = asyncio.run(_burn(facade, record))
    except HopBurnError as exc:
        raise _fail(str(exc)) from None
    if written is None:
        raise _fail(facade.snapshot.error or "No programmer info received")
    typer.echo(f"EEPROM written and verified ({written} bytes)")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
