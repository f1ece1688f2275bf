"""
Velvet Rope eligibility gates.

Four independent admission criteria applied to a registry record:
- authority age: at least 4.0 years since the grant date
- fleet size: at least 5 power units
- safety: rating must not be UNSATISFACTORY
- stability: no recent change of contact details

``evaluate`` is pure: no I/O, no logging, and the only time input is ``now``.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime, time

from carrier_onboarding.domain.models import (
    CarrierRegistryRecord,
    GateEvaluationResult,
    GateOutcome,
    SafetyRating,
)

MIN_AUTHORITY_AGE_YEARS = 4.0
MIN_FLEET_SIZE = 5
AVERAGE_YEAR_SECONDS = 365.25 * 24 * 60 * 60

AGE_GATE = "age"
FLEET_SIZE_GATE = "fleet_size"
SAFETY_GATE = "safety"
STABILITY_GATE = "stability"


def authority_age_years(granted_at: datetime, now: datetime) -> float:
    """Elapsed years truncated to one decimal; future grants count as zero."""
    elapsed = (now - granted_at).total_seconds()
    if elapsed <= 0:
        return 0.0
    return math.floor(elapsed / AVERAGE_YEAR_SECONDS * 10) / 10


def _grant_instant(record: CarrierRegistryRecord, now: datetime) -> datetime:
    # Grant dates carry no time of day; anchor them at midnight in now's zone.
    return datetime.combine(record.authority_granted_on, time.min, tzinfo=now.tzinfo)


def _age_gate(record: CarrierRegistryRecord, now: datetime) -> tuple[GateOutcome, str]:
    years = authority_age_years(_grant_instant(record, now), now)
    outcome = GateOutcome(
        name=AGE_GATE,
        passed=years >= MIN_AUTHORITY_AGE_YEARS,
        observed=years,
        required=MIN_AUTHORITY_AGE_YEARS,
    )
    reason = (
        f"Operating authority must be at least {MIN_AUTHORITY_AGE_YEARS} years old "
        f"(authority is {years} years old)"
    )
    return outcome, reason


def _fleet_size_gate(record: CarrierRegistryRecord) -> tuple[GateOutcome, str]:
    outcome = GateOutcome(
        name=FLEET_SIZE_GATE,
        passed=record.fleet_size >= MIN_FLEET_SIZE,
        observed=record.fleet_size,
        required=MIN_FLEET_SIZE,
    )
    reason = (
        f"Fleet size must be at least {MIN_FLEET_SIZE} trucks "
        f"(registry reports {record.fleet_size})"
    )
    return outcome, reason


def _safety_gate(record: CarrierRegistryRecord) -> tuple[GateOutcome, str]:
    rating = record.safety_rating
    outcome = GateOutcome(
        name=SAFETY_GATE,
        passed=rating != SafetyRating.UNSATISFACTORY,
        observed=rating.value,
        required=f"not {SafetyRating.UNSATISFACTORY.value}",
    )
    reason = (
        f"Safety rating must not be {SafetyRating.UNSATISFACTORY.value} "
        f"(registry reports {rating.value})"
    )
    return outcome, reason


def _stability_gate(record: CarrierRegistryRecord) -> tuple[GateOutcome, str]:
    outcome = GateOutcome(
        name=STABILITY_GATE,
        passed=not record.recent_contact_change,
        observed=record.recent_contact_change,
        required=False,
    )
    reason = (
        "Contact information must not have changed recently "
        "(registry reports a recent contact change)"
    )
    return outcome, reason


def evaluate(record: CarrierRegistryRecord, now: datetime | None = None) -> GateEvaluationResult:
    """Apply the four admission gates to ``record`` as of ``now``."""
    if now is None:
        now = datetime.now(UTC)

    checks = (
        _age_gate(record, now),
        _fleet_size_gate(record),
        _safety_gate(record),
        _stability_gate(record),
    )
    age, fleet_size, safety, stability = (outcome for outcome, _ in checks)

    return GateEvaluationResult(
        age=age,
        fleet_size=fleet_size,
        safety=safety,
        stability=stability,
        failure_reasons=tuple(reason for outcome, reason in checks if not outcome.passed),
        evaluated_at=now,
    )
