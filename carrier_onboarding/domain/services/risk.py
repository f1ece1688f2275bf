"""Fraud risk score derived from the registry record and gate verdict."""

from __future__ import annotations

from carrier_onboarding.domain.models import (
    CarrierRegistryRecord,
    GateEvaluationResult,
    RiskAssessment,
)
from carrier_onboarding.domain.services.email_policy import is_free_email_domain

MAX_RISK_SCORE = 100
SMALL_FLEET_THRESHOLD = 3

# indicator -> points (higher = more suspicious)
RISK_WEIGHTS: dict[str, int] = {
    "recent_contact_change": 30,
    "free_email_contact": 15,
    "missing_trade_name": 10,
    "small_fleet": 20,
    "gate_failed": 25,
}


def assess_risk(
    record: CarrierRegistryRecord, gate_result: GateEvaluationResult | None = None
) -> RiskAssessment:
    indicators: list[str] = []

    if record.recent_contact_change:
        indicators.append("recent_contact_change")
    if record.contact_email and is_free_email_domain(record.contact_email):
        indicators.append("free_email_contact")
    if not record.trade_name:
        indicators.append("missing_trade_name")
    if record.fleet_size < SMALL_FLEET_THRESHOLD:
        indicators.append("small_fleet")
    if gate_result is not None and not gate_result.passed:
        indicators.append("gate_failed")

    score = sum(RISK_WEIGHTS[indicator] for indicator in indicators)
    return RiskAssessment(score=min(score, MAX_RISK_SCORE), indicators=tuple(indicators))
