"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No connection logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    CONNECT_TIMEOUT_S,
    DEFAULT_API_VERSION,
    DEFAULT_ENVELOPE,
    DEFAULT_LIVE_HOST,
    DEFAULT_MODEL,
    DEFAULT_VOICE,
    LIVE_PATH_TEMPLATE,
    OUTBOUND_QUEUE_MAX_BYTES,
    OUTBOUND_QUEUE_MAX_CHUNKS,
    RECONNECT_JITTER_RATIO_DEFAULT,
    RECONNECT_MAX_ATTEMPTS,
)


class ConfigError(Exception):
    """Raised when the environment does not describe a usable session."""


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed down to LiveSession.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Endpoint / credentials
    # ------------------------------------------------------------------

    api_key: str
    host: str = DEFAULT_LIVE_HOST
    api_version: str = DEFAULT_API_VERSION

    # ------------------------------------------------------------------
    # Session setup
    # ------------------------------------------------------------------

    model: str = DEFAULT_MODEL
    voice: str | None = DEFAULT_VOICE
    envelope: str = DEFAULT_ENVELOPE

    # ------------------------------------------------------------------
    # Reconnect / backpressure
    # ------------------------------------------------------------------

    reconnect_max_attempts: int = RECONNECT_MAX_ATTEMPTS
    reconnect_jitter: float = RECONNECT_JITTER_RATIO_DEFAULT
    outbound_max_chunks: int = OUTBOUND_QUEUE_MAX_CHUNKS
    outbound_max_bytes: int = OUTBOUND_QUEUE_MAX_BYTES
    connect_timeout_s: float = CONNECT_TIMEOUT_S

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    def endpoint_url(self) -> str:
        """Full BidiGenerateContent URL including the API key."""
        path = LIVE_PATH_TEMPLATE.format(api_version=self.api_version)
        return f"wss://{self.host}{path}?key={self.api_key}"

    def redacted_endpoint_url(self) -> str:
        """Endpoint URL safe for logs."""
        path = LIVE_PATH_TEMPLATE.format(api_version=self.api_version)
        return f"wss://{self.host}{path}?key=***"

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ConfigError if GEMINI_API_KEY is missing or a numeric
            variable cannot be parsed.
        """
        api_key = os.environ.get("GEMINI_API_KEY", "").strip()
        if not api_key:
            raise ConfigError("GEMINI_API_KEY environment variable not set")

        voice = os.environ.get("LIVE_VOICE", DEFAULT_VOICE).strip() or None

        try:
            return AppConfig(
                env=os.environ.get("ENV", "dev"),
                log_level=os.environ.get("LOG_LEVEL", "INFO"),
                enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",

                api_key=api_key,
                host=os.environ.get("LIVE_HOST", DEFAULT_LIVE_HOST),
                api_version=os.environ.get("LIVE_API_VERSION", DEFAULT_API_VERSION),

                model=os.environ.get("LIVE_MODEL", DEFAULT_MODEL),
                voice=voice,
                envelope=os.environ.get("LIVE_ENVELOPE", DEFAULT_ENVELOPE),

                reconnect_max_attempts=int(
                    os.environ.get("RECONNECT_MAX_ATTEMPTS", RECONNECT_MAX_ATTEMPTS)
                ),
                reconnect_jitter=float(
                    os.environ.get("RECONNECT_JITTER", RECONNECT_JITTER_RATIO_DEFAULT)
                ),
                outbound_max_chunks=int(
                    os.environ.get("OUTBOUND_MAX_CHUNKS", OUTBOUND_QUEUE_MAX_CHUNKS)
                ),
                outbound_max_bytes=int(
                    os.environ.get("OUTBOUND_MAX_BYTES", OUTBOUND_QUEUE_MAX_BYTES)
                ),
                connect_timeout_s=float(
                    os.environ.get("CONNECT_TIMEOUT_S", CONNECT_TIMEOUT_S)
                ),
            )
        except ValueError as e:
            raise ConfigError(f"Invalid numeric configuration: {e}") from e
