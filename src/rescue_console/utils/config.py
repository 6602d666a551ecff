"""Configuration constants and environment settings for the rescue console."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# =============================================================================
# Advisory Trigger Policy
# =============================================================================

# Gas concentration at or above this level is critical (crossing upward triggers)
GAS_CRITICAL_THRESHOLD: float = 0.8

# Battery percentage at or below this level is low (crossing downward triggers)
BATTERY_LOW_THRESHOLD: float = 20.0

# Minimum seconds between periodic advisory resends
RESEND_INTERVAL_SECONDS: float = 15.0

# Upper bound on a single advisory request (seconds)
ADVISORY_REQUEST_TIMEOUT: float = 20.0

# Seconds per revealed character of advice text
REVEAL_TICK_SECONDS: float = 0.05

# =============================================================================
# Telemetry Channel
# =============================================================================

# A contact closer than this (scene units) counts as detected
DETECTION_RADIUS: float = 15.0

# Reconnect backoff: first delay, growth factor, ceiling (seconds)
RECONNECT_INITIAL_DELAY: float = 0.5
RECONNECT_BACKOFF_FACTOR: float = 2.0
RECONNECT_MAX_DELAY: float = 10.0

# Seconds to wait for a place-item acknowledgement
ACTION_ACK_TIMEOUT: float = 5.0

# =============================================================================
# Endpoints
# =============================================================================

DEFAULT_TELEMETRY_WS_URL: str = "ws://localhost:50001"
DEFAULT_RUNTIME_WS_URL: str = "ws://localhost:50002"
DEFAULT_PROVIDER_API_URL: str = "https://api.deepseek.com/chat/completions"
DEFAULT_PROVIDER_MODEL: str = "deepseek-chat"
DEFAULT_PROXY_PORT: int = 3001

# Provider request shaping used by the forwarding proxy
PROVIDER_TEMPERATURE: float = 0.7
PROVIDER_MAX_TOKENS: int = 100

# =============================================================================
# Advisory Text
# =============================================================================

SYSTEM_PROMPT: str = (
    "You are the command center for a search-and-rescue robot. You will receive "
    "the robot's real-time sensor data as JSON. Based on that data, give the "
    "operator one core directive in a terse, professional, calm military style. "
    "Keep it strictly under 20 words. If everything is normal, stay brief or "
    "report 'System status nominal'."
)

# Substituted when a response carries no advice text
NOMINAL_ADVICE: str = "System status nominal."

# Substituted when the advisory link fails
DEGRADED_ADVICE: str = "Link degraded, comms interference..."

# Simulated drift tick (seconds)
DRIFT_INTERVAL_SECONDS: float = 1.0


def load_env_file(path: str | Path = ".env") -> bool:
    """Load KEY=value pairs from a dotenv file into the process environment.

    Variables already set in the environment take precedence. Returns
    False when the file does not exist.
    """
    path = Path(path)
    if not path.is_file():
        return False
    return load_dotenv(path, override=False)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}") from None


@dataclass
class ConsoleSettings:
    """Process settings supplied through the environment.

    ``advisory_url`` points at the forwarding proxy. When it is unset the
    console talks to the provider directly and ``provider_api_key`` becomes
    mandatory; its absence is reported as a configuration error on the
    first advisory request.
    """

    telemetry_url: str = DEFAULT_TELEMETRY_WS_URL
    runtime_url: str | None = None
    advisory_url: str | None = None
    advisory_timeout: float = ADVISORY_REQUEST_TIMEOUT
    provider_api_url: str = DEFAULT_PROVIDER_API_URL
    provider_api_key: str | None = None
    proxy_port: int = DEFAULT_PROXY_PORT

    @classmethod
    def from_env(cls) -> "ConsoleSettings":
        """Build settings from the process environment."""
        port = _env_int("PROXY_PORT", _env_int("PORT", DEFAULT_PROXY_PORT))
        return cls(
            telemetry_url=os.environ.get("TELEMETRY_WS_URL") or DEFAULT_TELEMETRY_WS_URL,
            runtime_url=os.environ.get("RUNTIME_WS_URL") or None,
            advisory_url=os.environ.get("ADVISORY_URL") or None,
            advisory_timeout=_env_float("ADVISORY_TIMEOUT", ADVISORY_REQUEST_TIMEOUT),
            provider_api_url=os.environ.get("DEEPSEEK_API_URL") or DEFAULT_PROVIDER_API_URL,
            provider_api_key=os.environ.get("DEEPSEEK_API_KEY") or None,
            proxy_port=port,
        )

    @property
    def uses_proxy(self) -> bool:
        """Whether advisory requests go through the forwarding proxy."""
        return self.advisory_url is not None
