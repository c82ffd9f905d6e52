"""
Saving and loading wire images.

Images are stored either as raw .bin files (the exact bytes sent to the
programmer) or as a C source file declaring the same bytes as an array, for
firmware that embeds a default configuration.
"""

from __future__ import annotations

import logging
from pathlib import Path

from hopburn.exceptions import DataFileError
from hopburn.models.records import IdentityRecord
from hopburn.protocol.codec import decode_record, encode_record

logger = logging.getLogger(__name__)

C_ARRAY_NAME = "config_array"
C_SIZE_NAME = "gSizeFullFlashArray"
C_BYTES_PER_LINE = 8


def render_c_source(image: bytes) -> str:
    """
    Render an image as a C array definition.

    Eight bytes per line; every byte is followed by a separator, including
    the last one.

    Example:
        >>> render_c_source(b"HOP!").splitlines()[:2]
        ['const char config_array[] = {', '    0x48, 0x4F, 0x50, 0x21, ']
    """
    body = []
    for index, value in enumerate(image):
        separator = ",\n    " if (index + 1) % C_BYTES_PER_LINE == 0 else ", "
        body.append(f"0x{value:02X}{separator}")

    return (
        f"const char {C_ARRAY_NAME}[] = {{\n    "
        + "".join(body)
        + "\n};\n\n"
        + f"int {C_SIZE_NAME} = sizeof({C_ARRAY_NAME});\n"
    )


def write_image(path: str | Path, image: bytes) -> None:
    """
    Write a raw image file.

    Raises:
        DataFileError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.write_bytes(image)
    except OSError as e:
        raise DataFileError(f"Failed to save binary file: {e}", path=str(path)) from e
    logger.info("Binary file saved: %s (%d bytes)", path, len(image))


def write_c_source(path: str | Path, image: bytes) -> None:
    """
    Write an image as a C source file.

    Raises:
        DataFileError: If the file cannot be written.
    """
    path = Path(path)
    try:
        path.write_text(render_c_source(image), encoding="utf-8")
    except OSError as e:
        raise DataFileError(f"Failed to save C file: {e}", path=str(path)) from e
    logger.info("C file saved: %s", path)


def read_image(path: str | Path) -> bytes:
    """
    Read a raw image file.

    Raises:
        DataFileError: If the file cannot be read.
    """
    path = Path(path)
    try:
        image = path.read_bytes()
    except OSError as e:
        raise DataFileError(f"Failed to read file: {e}", path=str(path)) from e
    logger.info("Loaded .bin file with %d bytes", len(image))
    return image


def save_record(
    record: IdentityRecord,
    bin_path: str | Path,
    c_path: str | Path | None = None,
) -> bytes:
    """
    Encode a record and write it to disk.

    Args:
        record: Record to save.
        bin_path: Destination of the raw image.
        c_path: Optional destination of the C source rendering.

    Returns:
        The encoded image.

    Raises:
        InvalidFieldError: If the record cannot be encoded.
        DataFileError: If a file cannot be written.
    """
    image = encode_record(record)
    write_image(bin_path, image)
    if c_path is not None:
        write_c_source(c_path, image)
    return image


def load_record(path: str | Path) -> IdentityRecord:
    """Read and decode a .bin image file."""
    return decode_record(read_image(path))
