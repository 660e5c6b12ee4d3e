"""
Purpose: Central configuration for live tracking.
What it does:

Stores all tunable thresholds for movement detection, route recomputation
and location sampling:

MOVEMENT_THRESHOLD_DEG = 5e-5   (~5 m)
STOP_DEBOUNCE_MS = 5000
ROUTE_MIN_DELTA_DEG = 5e-5

Values can be overridden from the environment (.env) with BUSBUDDY_* keys.

Rule: No logic here, just parameters so you can tune without rewriting code.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "BUSBUDDY_"


@dataclass(frozen=True)
class TrackingPolicy:
    """
    Central configuration for movement classification and route estimation.
    """

    # --- Movement classification ---
    # Degree-space displacement at or above which the vehicle counts as moving.
    movement_threshold_deg: float = 5e-5

    # Quiet period after the last sub-threshold sample before we call it stopped.
    stop_debounce_ms: int = 5000

    # --- Route recomputation ---
    # Either endpoint must move more than this before we ask the router again.
    route_min_delta_deg: float = 5e-5

    # --- Location source ---
    high_accuracy: bool = True
    max_sample_age_ms: Optional[int] = None
    fix_timeout_ms: Optional[int] = None

    # --- Realtime store ---
    broadcast_table: str = "bus_locations"

    def validate(self) -> None:
        """
        Basic sanity checks.
        """
        if self.movement_threshold_deg <= 0:
            raise ValueError("movement_threshold_deg must be > 0")

        if self.stop_debounce_ms <= 0:
            raise ValueError("stop_debounce_ms must be > 0")

        if self.route_min_delta_deg < 0:
            raise ValueError("route_min_delta_deg must be >= 0")

        if self.max_sample_age_ms is not None and self.max_sample_age_ms < 0:
            raise ValueError("max_sample_age_ms must be >= 0")

        if self.fix_timeout_ms is not None and self.fix_timeout_ms <= 0:
            raise ValueError("fix_timeout_ms must be > 0")

        if not self.broadcast_table:
            raise ValueError("broadcast_table must not be empty")


def default_tracking_policy() -> TrackingPolicy:
    """
    Convenience factory for the default policy.
    """
    p = TrackingPolicy()
    p.validate()
    return p


def _coerce(raw: str, default):
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    if default is None:
        # optional millisecond limits
        return int(raw)
    return raw


def policy_from_env(base: Optional[TrackingPolicy] = None) -> TrackingPolicy:
    """
    Build a policy from BUSBUDDY_* environment variables, e.g.
    BUSBUDDY_STOP_DEBOUNCE_MS=8000 in .env.
    Unset keys keep the value from `base` (or the defaults).
    """
    load_dotenv()
    base = base or TrackingPolicy()

    overrides = {}
    for policy_field in fields(TrackingPolicy):
        raw = os.getenv(ENV_PREFIX + policy_field.name.upper())
        if raw is None:
            continue
        if not raw.strip():
            # KEY= clears an optional limit, otherwise keeps the base value
            if policy_field.default is None:
                overrides[policy_field.name] = None
            continue
        overrides[policy_field.name] = _coerce(raw, getattr(base, policy_field.name))

    values = {policy_field.name: getattr(base, policy_field.name) for policy_field in fields(TrackingPolicy)}
    values.update(overrides)

    p = TrackingPolicy(**values)
    p.validate()
    return p
