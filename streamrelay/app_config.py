from pydantic import BaseModel, Field

from streamrelay.shared.config import config


class AppEnvironConfig(BaseModel):
    DEBUG: bool = config.get_bool("DEBUG")
    RELAY_ENVIRONMENT: str = config.get_str("RELAY_ENVIRONMENT", "development")

    API_HOST: str = config.get_str("API_HOST", "0.0.0.0")
    API_PORT: int = config.get_int("API_PORT", 3000, minimum=1)
    API_WORKERS: int = config.get_int("API_WORKERS", 1, minimum=1)
    API_CORS_ORIGINS: list[str] = config.get_list("API_CORS_ORIGINS", ["*"])

    LOGFIRE_ENABLE: bool = config.get_bool("LOGFIRE_ENABLE")
    LOGFIRE_TOKEN: str | None = config.get_str("LOGFIRE_TOKEN") or None

    # Transcoding tool
    FFMPEG_PATH: str = config.get_str("FFMPEG_PATH", "ffmpeg")
    FFMPEG_CHECK_TIMEOUT_SECONDS: float = config.get_float("FFMPEG_CHECK_TIMEOUT_SECONDS", 5.0)

    # Relay socket and sessions
    RELAY_PATH: str = config.get_str("RELAY_PATH", "/stream")
    RELAY_RTMP_BASE_URL: str = config.get_str(
        "RELAY_RTMP_BASE_URL", "rtmps://live-api-s.facebook.com:443/rtmp/"
    )
    # Delay between spawning the transcoder and reporting the session live
    RELAY_LIVE_CONFIRM_SECONDS: float = config.get_float("RELAY_LIVE_CONFIRM_SECONDS", 1.0)
    RELAY_STOP_GRACE_SECONDS: float = config.get_float("RELAY_STOP_GRACE_SECONDS", 5.0)
    # Degraded mode: keep the protocol running without a transcoder when spawning fails
    RELAY_ALLOW_SIMULATED: bool = config.get_bool("RELAY_ALLOW_SIMULATED", False)
    RELAY_CHUNK_ACK: bool = config.get_bool("RELAY_CHUNK_ACK", True)


class RelayClientSettings(BaseModel):
    """Settings for the client-side relay controller and endpoint prober."""

    endpoints: list[str] = Field(default_factory=list)
    user_endpoint: str | None = None
    # Skips endpoint discovery when set
    ws_endpoint: str | None = None

    probe_timeout: float = 5.0
    connect_timeout: float = 8.0
    heartbeat_interval: float = 15.0
    reconnect_interval: float = 5.0
    max_reconnect_attempts: int = 5
    auto_reconnect: bool = True

    @classmethod
    def from_environ(cls) -> "RelayClientSettings":
        return cls(
            endpoints=config.get_list("RELAY_CLIENT_ENDPOINTS"),
            user_endpoint=config.get_str("RELAY_CLIENT_USER_ENDPOINT") or None,
            ws_endpoint=config.get_str("RELAY_CLIENT_WS_ENDPOINT") or None,
            probe_timeout=config.get_float("RELAY_CLIENT_PROBE_TIMEOUT", 5.0),
            connect_timeout=config.get_float("RELAY_CLIENT_CONNECT_TIMEOUT", 8.0),
            heartbeat_interval=config.get_float("RELAY_CLIENT_HEARTBEAT_INTERVAL", 15.0),
            reconnect_interval=config.get_float("RELAY_CLIENT_RECONNECT_INTERVAL", 5.0),
            max_reconnect_attempts=config.get_int("RELAY_CLIENT_MAX_RECONNECT_ATTEMPTS", 5),
            auto_reconnect=config.get_bool("RELAY_CLIENT_AUTO_RECONNECT", True),
        )


_app_environ_config = AppEnvironConfig()


def get_app_environ_config() -> AppEnvironConfig:
    return _app_environ_config
