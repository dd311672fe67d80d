# ============================================================================
# CONFIGURATION DEFAULTS
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core - Default configuration values
# PURPOSE: Centralized defaults for the engine, scheduler, tracking and channels
# CREATED: 14 SEP 2026
# ============================================================================
"""
Configuration Defaults

Immutable dataclasses with environment variable overrides. Services receive
the relevant section at construction time; tests build their own instances
instead of touching the environment.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str) -> Tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class EngineDefaults:
    """
    Defaults for the orchestrator core and scheduler.
    """
    # Scheduler cadence (seconds)
    sweep_interval_sec: float = 60.0
    secondary_scan_interval_sec: float = 60.0

    # Secondary trigger window width (minutes)
    secondary_window_minutes: int = 15

    # Appointment statuses considered by secondary triggers
    secondary_appointment_statuses: Tuple[str, ...] = ("scheduled", "completed")

    # Segment assumed when an event context does not carry one
    default_patient_segment: str = "NEW"

    # Upper bound on nodes executed in a single drive of one instance
    max_steps_per_run: int = 200

    # Maximum due instances claimed per sweep
    sweep_batch_size: int = 500

    # Strict template rendering raises on undefined variables
    strict_templates: bool = False

    @classmethod
    def from_env(cls) -> "EngineDefaults":
        """Create from environment variables."""
        return cls(
            sweep_interval_sec=float(os.getenv("SCHEDULER_SWEEP_INTERVAL", 60)),
            secondary_scan_interval_sec=float(os.getenv("SCHEDULER_SECONDARY_INTERVAL", 60)),
            secondary_window_minutes=int(os.getenv("SECONDARY_WINDOW_MINUTES", 15)),
            default_patient_segment=os.getenv("DEFAULT_PATIENT_SEGMENT", "NEW"),
            max_steps_per_run=int(os.getenv("ENGINE_MAX_STEPS", 200)),
            sweep_batch_size=int(os.getenv("SCHEDULER_SWEEP_BATCH", 500)),
            strict_templates=_env_bool("STRICT_TEMPLATES", False),
        )


@dataclass(frozen=True)
class TrackingDefaults:
    """
    Defaults for open/click tracking.

    An empty allow-list permits only relative redirect targets.
    """
    public_base_url: str = ""
    redirect_allowed_hosts: Tuple[str, ...] = ()
    default_click_action: str = "DEFAULT"

    def is_redirect_allowed(self, host: Optional[str]) -> bool:
        """Check a redirect host against the allow-list (subdomains included)."""
        if not host:
            return True
        host = host.lower()
        for allowed in self.redirect_allowed_hosts:
            if host == allowed or host.endswith("." + allowed):
                return True
        return False

    @classmethod
    def from_env(cls) -> "TrackingDefaults":
        """Create from environment variables."""
        return cls(
            public_base_url=os.getenv("TRACKING_BASE_URL", "").rstrip("/"),
            redirect_allowed_hosts=_env_list("TRACKING_REDIRECT_ALLOWED_HOSTS"),
        )


@dataclass(frozen=True)
class ChannelDefaults:
    """
    Defaults for outbound channel clients and sender resolution.
    """
    clinic_api_url: str = "http://localhost:3000/api"
    clinic_api_token: str = ""
    resend_api_url: str = "https://api.resend.com"
    resend_api_key: str = ""
    email_from_domain: str = ""
    twilio_api_url: str = "https://api.twilio.com/2010-04-01"
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    request_timeout_sec: float = 15.0

    # Use the clinic's first account as sender when no doctor is known
    allow_fallback_sender: bool = True

    @classmethod
    def from_env(cls) -> "ChannelDefaults":
        """Create from environment variables."""
        return cls(
            clinic_api_url=os.getenv("CLINIC_API_URL", "http://localhost:3000/api").rstrip("/"),
            clinic_api_token=os.getenv("CLINIC_API_TOKEN", ""),
            resend_api_url=os.getenv("RESEND_API_URL", "https://api.resend.com").rstrip("/"),
            resend_api_key=os.getenv("RESEND_API_KEY", ""),
            email_from_domain=os.getenv("EMAIL_FROM_DOMAIN", ""),
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            request_timeout_sec=float(os.getenv("CHANNEL_TIMEOUT_SECONDS", 15)),
            allow_fallback_sender=_env_bool("ALLOW_FALLBACK_SENDER", True),
        )


# ============================================================================
# GLOBAL DEFAULTS INSTANCE
# ============================================================================

@dataclass
class Defaults:
    """Container for all default configurations."""
    engine: EngineDefaults = field(default_factory=EngineDefaults)
    tracking: TrackingDefaults = field(default_factory=TrackingDefaults)
    channels: ChannelDefaults = field(default_factory=ChannelDefaults)

    @classmethod
    def from_env(cls) -> "Defaults":
        """Create all defaults from environment variables."""
        return cls(
            engine=EngineDefaults.from_env(),
            tracking=TrackingDefaults.from_env(),
            channels=ChannelDefaults.from_env(),
        )


_defaults: Optional[Defaults] = None


def get_defaults() -> Defaults:
    """Get global defaults instance."""
    global _defaults
    if _defaults is None:
        _defaults = Defaults.from_env()
    return _defaults


def reset_defaults() -> None:
    """Reset defaults (for testing)."""
    global _defaults
    _defaults = None


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "EngineDefaults",
    "TrackingDefaults",
    "ChannelDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
