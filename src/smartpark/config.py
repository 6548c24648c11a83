# File: src/smartpark/config.py
"""
Configuration for the SmartPark booking engine

Two groups of settings live here:
1. BookingPolicies - business policy values consumed by the engines
   (billing unit, loyalty threshold, reward points, charging defaults)
2. Settings - runtime wiring (database URL, log level)

Both can be overridden from SMARTPARK_* environment variables.
"""

from dataclasses import dataclass, field, fields
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple
import os


ENV_PREFIX = "SMARTPARK_"


# ============================================================================
# BUSINESS POLICIES
# ============================================================================

@dataclass
class BookingPolicies:
    """Value Object: Policy values for reservations, charging and rewards"""
    billing_unit_minutes: int = 60
    default_charging_duration: timedelta = timedelta(hours=2)
    energy_per_minute_kwh: Decimal = Decimal('0.5')
    loyal_customer_threshold: int = 2
    reward_base_points: int = 10
    reward_loyal_bonus_points: int = 5
    default_payment_method: str = "Credit Card"
    fallback_to_default_payment: bool = True
    declined_payment_methods: Tuple[str, ...] = ("PayPal",)
    currency: str = "USD"

    def __post_init__(self):
        """Validate policy values"""
        if self.billing_unit_minutes <= 0:
            raise ValueError("Billing unit must be a positive number of minutes")

        if self.default_charging_duration <= timedelta(0):
            raise ValueError("Default charging duration must be positive")

        if self.energy_per_minute_kwh <= Decimal('0'):
            raise ValueError("Energy consumption rate must be positive")

        if self.loyal_customer_threshold < 1:
            raise ValueError("Loyal customer threshold must be at least 1")

        if self.reward_base_points < 0 or self.reward_loyal_bonus_points < 0:
            raise ValueError("Reward points cannot be negative")

        if not self.default_payment_method.strip():
            raise ValueError("Default payment method cannot be blank")

        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'BookingPolicies':
        """
        Build policies from SMARTPARK_<FIELD> environment variables.

        Durations are read as minutes, tuples as comma separated lists.
        """
        environ = os.environ if environ is None else environ
        overrides: Dict[str, Any] = {}

        for policy_field in fields(cls):
            raw = environ.get(ENV_PREFIX + policy_field.name.upper())
            if raw is None:
                continue
            overrides[policy_field.name] = _coerce(policy_field.name, raw, policy_field.default)

        return cls(**overrides)


def _coerce(name: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the policy default"""
    raw = raw.strip()
    try:
        if isinstance(default, bool):
            return raw.lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, Decimal):
            return Decimal(raw)
        if isinstance(default, timedelta):
            return timedelta(minutes=float(raw))
        if isinstance(default, tuple):
            return tuple(part.strip() for part in raw.split(",") if part.strip())
    except (ArithmeticError, ValueError) as e:
        raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from e
    return raw


# ============================================================================
# RUNTIME SETTINGS
# ============================================================================

@dataclass
class Settings:
    """Runtime settings for the CLI and persistence wiring"""
    database_url: str = "sqlite:///smartpark.db"
    log_level: str = "INFO"
    policies: BookingPolicies = field(default_factory=BookingPolicies)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        environ = os.environ if environ is None else environ
        return cls(
            database_url=environ.get(ENV_PREFIX + "DATABASE_URL", cls.database_url),
            log_level=environ.get(ENV_PREFIX + "LOG_LEVEL", cls.log_level).upper(),
            policies=BookingPolicies.from_env(environ),
        )
