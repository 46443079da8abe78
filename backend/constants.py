"""
BEHAVIOURAL CONSTANTS
---------------------
Single source of truth for every protocol and policy number in the client.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (keys, hosts, model ids) live in config.py;
  the defaults for those are declared here.
"""

from __future__ import annotations

from typing import Final, Tuple

# =============================================================================
# Outbound audio (producer contract): PCM16LE mono @ 16kHz
# =============================================================================

INPUT_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)

# Recorder reads 2048 shorts per chunk
INPUT_CHUNK_SAMPLES: Final[int] = 2048
INPUT_CHUNK_BYTES: Final[int] = INPUT_CHUNK_SAMPLES * AUDIO_SAMPLE_WIDTH_BYTES

# =============================================================================
# Inbound audio (playback sink contract): PCM16LE mono @ 24kHz
# =============================================================================

OUTPUT_SAMPLE_RATE_HZ: Final[int] = 24_000

# =============================================================================
# Wire format
# =============================================================================

MIME_AUDIO_PCM_PREFIX: Final[str] = "audio/pcm"
MIME_IMAGE_JPEG: Final[str] = "image/jpeg"
RESPONSE_MODALITY_AUDIO: Final[str] = "audio"

# =============================================================================
# Endpoint defaults
# =============================================================================

DEFAULT_LIVE_HOST: Final[str] = "generativelanguage.googleapis.com"
DEFAULT_API_VERSION: Final[str] = "v1alpha"
DEFAULT_MODEL: Final[str] = "models/gemini-2.0-flash-exp"
DEFAULT_VOICE: Final[str] = "Puck"
DEFAULT_ENVELOPE: Final[str] = "media_chunks"

LIVE_PATH_TEMPLATE: Final[str] = (
    "/ws/google.ai.generativelanguage.{api_version}"
    ".GenerativeService.BidiGenerateContent"
)

# =============================================================================
# Transport
# =============================================================================

CLOSE_CODE_NORMAL: Final[int] = 1000
# Reported when the peer vanished without a close frame
CLOSE_CODE_ABNORMAL: Final[int] = 1006
NORMAL_CLOSE_CODES: Final[Tuple[int, ...]] = (CLOSE_CODE_NORMAL,)

CONNECT_TIMEOUT_S: Final[float] = 10.0
MAX_INBOUND_FRAME_BYTES: Final[int] = 2**22

# =============================================================================
# Reconnect backoff
# =============================================================================

RECONNECT_BASE_DELAY_MS: Final[int] = 1_000
RECONNECT_CAP_DELAY_MS: Final[int] = 30_000
RECONNECT_MAX_ATTEMPTS: Final[int] = 5
RECONNECT_JITTER_RATIO_DEFAULT: Final[float] = 0.0

# =============================================================================
# Outbound queue (backpressure by rejection)
# =============================================================================

OUTBOUND_QUEUE_MAX_CHUNKS: Final[int] = 32
OUTBOUND_QUEUE_MAX_BYTES: Final[int] = 512 * 1024

# =============================================================================
# Observability
# =============================================================================

LOG_PAYLOAD_PREVIEW_CHARS: Final[int] = 100
