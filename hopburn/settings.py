"""
Runtime settings for talking to the programmer.

Settings are a frozen Pydantic model so that an invalid chunk size or a
negative timeout is rejected when the settings are built, not halfway
through an upload.

Example:
    >>> settings = ProgrammerSettings(port="/dev/ttyACM0", baudrate=115200)
    >>> settings.chunk_size
    6
    >>> settings.model_copy(update={"chunk_size": 16}).chunk_size
    16
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from hopburn.protocol.constants import ProtocolConstants


class ProgrammerSettings(BaseModel):
    """Serial port and transfer settings."""

    model_config = ConfigDict(frozen=True)

    port: str = Field(default="", description="Serial port path (e.g. /dev/ttyACM0)")
    baudrate: int = Field(
        default=ProtocolConstants.DEFAULT_BAUD_RATE,
        gt=0,
        description="Serial baud rate",
    )
    response_timeout: float = Field(
        default=ProtocolConstants.DEFAULT_RESPONSE_TIMEOUT,
        gt=0,
        description="Seconds to wait for any response line",
    )
    chunk_size: int = Field(
        default=ProtocolConstants.DEFAULT_CHUNK_SIZE,
        ge=1,
        le=ProtocolConstants.MAX_CHUNK_SIZE,
        description="Bytes per write during an upload",
    )
    inter_chunk_delay: float = Field(
        default=ProtocolConstants.DEFAULT_INTER_CHUNK_DELAY,
        ge=0,
        description="Seconds to pause between chunk writes",
    )
