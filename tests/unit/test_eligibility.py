from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from carrier_onboarding.domain.errors import ValidationError
from carrier_onboarding.domain.models import SafetyRating
from carrier_onboarding.domain.services.eligibility import (
    AVERAGE_YEAR_SECONDS,
    authority_age_years,
    evaluate,
)
from tests.fakes import NOW, canned_records, make_record

FLEET_REASON = "Fleet size must be at least 5 trucks (registry reports 1)"
STABILITY_REASON = (
    "Contact information must not have changed recently "
    "(registry reports a recent contact change)"
)


class TestScenarios:
    def test_compliant_carrier_passes_every_gate(self) -> None:
        result = evaluate(canned_records()["777777"], NOW)

        assert result.passed is True
        assert result.failure_reasons == ()
        assert all(gate.passed for gate in result.gates)
        assert result.age.observed == 11.4
        assert result.evaluated_at == NOW

    def test_small_fleet_fails_only_fleet_gate(self) -> None:
        result = evaluate(canned_records()["111111"], NOW)

        assert result.passed is False
        assert result.failure_reasons == (FLEET_REASON,)
        assert result.age.passed and result.safety.passed and result.stability.passed

    def test_recent_contact_change_fails_only_stability_gate(self) -> None:
        result = evaluate(canned_records()["999999"], NOW)

        assert result.passed is False
        assert result.failure_reasons == (STABILITY_REASON,)


class TestGateRules:
    def test_passed_is_conjunction_of_gates(self) -> None:
        records = [
            make_record(),
            make_record(fleet_size=4),
            make_record(safety_rating=SafetyRating.UNSATISFACTORY),
            make_record(recent_contact_change=True),
            make_record(authority_granted_on=date(2024, 1, 1)),
        ]
        for record in records:
            result = evaluate(record, NOW)
            assert result.passed == all(gate.passed for gate in result.gates)
            assert result.passed == (len(result.failure_reasons) == 0)

    def test_reasons_follow_gate_order(self) -> None:
        record = make_record(
            authority_granted_on=date(2025, 1, 1),
            fleet_size=2,
            safety_rating=SafetyRating.UNSATISFACTORY,
            recent_contact_change=True,
        )
        reasons = evaluate(record, NOW).failure_reasons

        assert len(reasons) == 4
        assert reasons[0].startswith("Operating authority must be at least 4.0 years old")
        assert reasons[1].startswith("Fleet size must be at least 5 trucks")
        assert reasons[2] == "Safety rating must not be UNSATISFACTORY (registry reports UNSATISFACTORY)"
        assert reasons[3] == STABILITY_REASON

    @pytest.mark.parametrize(
        ("rating", "passed"),
        [
            (SafetyRating.SATISFACTORY, True),
            (SafetyRating.NONE, True),
            (SafetyRating.UNSATISFACTORY, False),
        ],
    )
    def test_only_unsatisfactory_rating_fails(self, rating: SafetyRating, passed: bool) -> None:
        assert evaluate(make_record(safety_rating=rating), NOW).safety.passed is passed

    def test_fleet_of_exactly_five_passes(self) -> None:
        assert evaluate(make_record(fleet_size=5), NOW).fleet_size.passed is True
        assert evaluate(make_record(fleet_size=4), NOW).fleet_size.passed is False

    def test_evaluate_is_pure(self) -> None:
        record = make_record(fleet_size=3)

        assert evaluate(record, NOW) == evaluate(record, NOW)

    def test_negative_fleet_is_rejected_on_construction(self) -> None:
        with pytest.raises(ValidationError):
            make_record(fleet_size=-1)


class TestAuthorityAge:
    def test_exactly_four_years_passes(self) -> None:
        granted = date(2020, 3, 1)
        start = datetime(2020, 3, 1, tzinfo=UTC)
        now = start + timedelta(seconds=4 * AVERAGE_YEAR_SECONDS)

        result = evaluate(make_record(authority_granted_on=granted), now)

        assert result.age.observed == 4.0
        assert result.age.passed is True

    def test_just_under_four_years_fails(self) -> None:
        granted = date(2020, 3, 1)
        start = datetime(2020, 3, 1, tzinfo=UTC)
        now = start + timedelta(seconds=4 * AVERAGE_YEAR_SECONDS - 1)

        result = evaluate(make_record(authority_granted_on=granted), now)

        assert result.age.observed == 3.9
        assert result.age.passed is False
        assert result.failure_reasons[0] == (
            "Operating authority must be at least 4.0 years old (authority is 3.9 years old)"
        )

    def test_age_is_truncated_not_rounded(self) -> None:
        start = datetime(2020, 1, 1, tzinfo=UTC)
        now = start + timedelta(seconds=2.96 * AVERAGE_YEAR_SECONDS)

        assert authority_age_years(start, now) == 2.9

    def test_future_grant_counts_as_zero(self) -> None:
        assert authority_age_years(NOW + timedelta(days=30), NOW) == 0.0
