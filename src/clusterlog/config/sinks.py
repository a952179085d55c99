"""
Sink Configuration.
"""

from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LogFormat(str, Enum):
    CONSOLE = "console"
    JSON = "json"


class SysLogTransport(str, Enum):
    UDP = "udp"
    TCP = "tcp"
    TLS = "tls"


class SysLogProtocol(str, Enum):
    BSD = "bsd"
    RFC3164 = "3164"
    RFC5424 = "5424"


class FileLogSettings(BaseModel):
    """Daily file sink. ``dir`` falls back to the platform log directory."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    dir: Optional[Path] = Field(default=None, description="Directory for log files")
    days_to_keep: int = Field(default=7, ge=0, le=30, description="Days of files to keep, 0 keeps all")
    format: LogFormat = Field(default=LogFormat.CONSOLE, description="Line format")


class SysLogSettings(BaseModel):
    """Remote syslog collector."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(default="127.0.0.1", min_length=1, description="Collector host")
    port: int = Field(default=514, ge=1, le=65535, description="Collector port")
    transport: SysLogTransport = Field(default=SysLogTransport.UDP, description="Transport")
    protocol: SysLogProtocol = Field(default=SysLogProtocol.BSD, description="Message framing")
    send_info_notifications: bool = Field(
        default=False,
        description="Forward info level messages to the collector",
    )

    @field_validator("protocol", mode="before")
    @classmethod
    def _protocol_as_text(cls, value: object) -> object:
        # 3164 and 5424 are often written as numbers
        return str(value) if isinstance(value, int) else value
