"""
Server Watchdog Configuration.

Connection settings for the process watchdog the heartbeat registers with.
"""

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class WatchdogSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str = Field(min_length=1, description="Watchdog server host")
    port: int = Field(ge=1, le=65535, description="Watchdog server port")
    api_key: SecretStr = Field(description="API key sent as X-Api-Key")
    default_channel: str = Field(default="", description="Notification channel for this process")
    timeout: float = Field(default=10.0, gt=0, description="Request timeout in seconds")
    interval: float = Field(default=30.0, gt=0, description="Re-registration period in seconds")
    use_tls: bool = Field(default=False, description="Use https")

    @property
    def base_url(self) -> str:
        scheme = "https" if self.use_tls else "http"
        return f"{scheme}://{self.host}:{self.port}"
