"""
Client Settings - Single Source of Truth
========================================
All client configuration using Pydantic Settings.

Values come from keyword arguments, then ``ZB_*`` environment variables,
then the defaults below. One ``ClientSettings`` instance is shared by the
REST client, the subscription manager and every socket session, so an
option changed at runtime is seen by sessions that are already open.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from enum import Enum


class LogLevel(str, Enum):
    """Logging levels"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: LogLevel = Field(default=LogLevel.INFO)
    file_enabled: bool = Field(default=False)
    console_enabled: bool = Field(default=True)
    structured_logging: bool = Field(default=True)
    log_dir: str = Field(default="logs")
    max_file_size_mb: int = Field(default=100)
    backup_count: int = Field(default=5)

    class Config:
        env_prefix = "ZB_LOG_"


class ClientSettings(BaseSettings):
    """ZB client options"""
    timeout: float = Field(default=30.0, description="REST request timeout and WebSocket open timeout (seconds)")
    reconnect: bool = Field(default=True, description="Re-establish WebSocket sessions after they close")
    verbose: bool = Field(default=False, description="Emit diagnostic subscription logs")
    test: bool = Field(default=False, description="Test mode flag")

    ws_url: str = Field(default="wss://api.zb.com:9999/websocket", description="Stream endpoint shared by all subscriptions")
    rest_url: str = Field(default="http://api.zb.com/data/v1/", description="Public REST API base URL")

    heartbeat_interval: float = Field(default=30.0, description="Seconds between liveness probes")
    reconnect_delay: float = Field(default=1.0, description="Seconds to wait before rebuilding a closed subscription")

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator('timeout', 'heartbeat_interval')
    @classmethod
    def validate_positive(cls, v):
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator('reconnect_delay')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator('ws_url')
    @classmethod
    def validate_ws_url(cls, v):
        if not v.startswith(("ws://", "wss://")):
            raise ValueError(f"Invalid WebSocket URL: '{v}'. Expected ws:// or wss://")
        return v

    @field_validator('rest_url')
    @classmethod
    def validate_rest_url(cls, v):
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Invalid REST URL: '{v}'. Expected http:// or https://")
        if not v.endswith("/"):
            v += "/"
        return v

    class Config:
        env_prefix = "ZB_"
