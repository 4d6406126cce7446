"""
Feature Flags - Easy on/off toggle for features.
Defaults depend on the environment: verbose/self-healing behaviour is on
outside production and off in production unless explicitly enabled.
"""

import os


def _is_production() -> bool:
    return os.getenv("ENV", "development").lower() == "production"


def _env_toggle(name: str, non_prod_default: bool = True) -> bool:
    """Explicit 'true' always wins; otherwise on outside production unless 'false'."""
    raw = os.getenv(name)
    if raw is not None and raw.lower() == "true":
        return True
    if _is_production():
        return False
    if raw is None:
        return non_prod_default
    return raw.lower() != "false"


class Features:
    """Feature toggles - set via env vars or defaults"""

    # === EVENT BUS ===
    RABBIT_AUTOBIND: bool = _env_toggle("RABBIT_AUTOBIND")
    RABBIT_AUTOBIND_ON_RETURN: bool = _env_toggle("RABBIT_AUTOBIND_ON_RETURN")
    RABBIT_LOG_PAYLOADS: bool = _env_toggle("RABBIT_LOG_PAYLOADS")

    # === WORKERS ===
    ENABLE_WAITLIST_WORKER: bool = os.getenv("ENABLE_WAITLIST_WORKER", "true").lower() != "false"
    ENABLE_CAPACITY_WORKER: bool = os.getenv("ENABLE_CAPACITY_WORKER", "true").lower() != "false"
    ENABLE_LIFECYCLE_SCHEDULER: bool = os.getenv("ENABLE_LIFECYCLE_SCHEDULER", "true").lower() != "false"

    # === PENALTIES ===
    PENALTY_ENABLED: bool = os.getenv("PENALTY_ENABLED", "true").lower() == "true"

    # === DEBUG ===
    DEBUG_MODE: bool = os.getenv("DEBUG", "false").lower() == "true"

    @classmethod
    def to_dict(cls) -> dict:
        """Get all features as dict (useful for logging)"""
        return {
            "rabbit_autobind": cls.RABBIT_AUTOBIND,
            "rabbit_autobind_on_return": cls.RABBIT_AUTOBIND_ON_RETURN,
            "rabbit_log_payloads": cls.RABBIT_LOG_PAYLOADS,
            "enable_waitlist_worker": cls.ENABLE_WAITLIST_WORKER,
            "enable_capacity_worker": cls.ENABLE_CAPACITY_WORKER,
            "enable_lifecycle_scheduler": cls.ENABLE_LIFECYCLE_SCHEDULER,
            "penalty_enabled": cls.PENALTY_ENABLED,
            "debug_mode": cls.DEBUG_MODE,
        }


# Shortcut
features = Features()
