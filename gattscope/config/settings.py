import os
from dataclasses import dataclass, field


@dataclass
class BLEConfig:
    service_uuids: tuple[str, ...] = ("0xffe0",)
    device_name: str = ""
    scan_timeout: float = 10.0
    connect_timeout: float = 20.0
    settle_ms: int = 500
    discovery_settle_ms: int = 600
    discovery_attempts: int = 3
    discovery_delay_ms: int = 1000


@dataclass
class CodecConfig:
    # substring -> rule; rule is "bool", "byte" or any decodable format name
    auto_format_table: str = "ffe0=bool,ffe1=byte,ffe3=hex"


@dataclass
class PollConfig:
    min_interval_ms: int = 1000
    default_interval_ms: int = 2000
    skip_overlapping_ticks: bool = False


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    cors_origins: str = "*"
    socketio_async_mode: str = "threading"
    loop_timeout_sec: float = 60.0


@dataclass
class AppConfig:
    ble: BLEConfig = field(default_factory=BLEConfig)
    codec: CodecConfig = field(default_factory=CodecConfig)
    poll: PollConfig = field(default_factory=PollConfig)
    server: ServerConfig = field(default_factory=ServerConfig)


def split_service_list(text: str) -> tuple[str, ...]:
    """Split a user-entered service list like ``"0xffe0, 0xffe5"``."""
    return tuple(s.strip() for s in text.split(",") if s.strip())


def load_config() -> AppConfig:
    config = AppConfig()
    config.server.host = os.getenv("HOST", config.server.host)
    config.server.port = int(os.getenv("PORT", config.server.port))
    config.server.debug = os.getenv("DEBUG", "false").lower() == "true"

    services = os.getenv("BLE_SERVICES")
    if services:
        config.ble.service_uuids = split_service_list(services)
    config.ble.device_name = os.getenv("BLE_DEVICE_NAME", config.ble.device_name)
    config.ble.scan_timeout = float(
        os.getenv("BLE_SCAN_TIMEOUT", config.ble.scan_timeout)
    )

    config.codec.auto_format_table = os.getenv(
        "AUTO_FORMAT_TABLE", config.codec.auto_format_table
    )

    config.poll.min_interval_ms = int(
        os.getenv("POLL_MIN_INTERVAL_MS", config.poll.min_interval_ms)
    )
    config.poll.skip_overlapping_ticks = (
        os.getenv("POLL_SKIP_OVERLAP", "false").lower() == "true"
    )
    return config
