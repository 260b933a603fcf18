"""
Unit tests for status precedence.
"""

import itertools

import pytest

from agents.status_resolver_agent import resolve_status, status_resolver_agent
from utils.schemas import (
    ClinicalStatus,
    CohortMember,
    ExclusionCategory,
    ExclusionReason,
    Provenance,
    StatinIntensity,
    TherapyResult,
)

INTOLERANCE = ExclusionReason(
    category=ExclusionCategory.INTOLERANCE,
    reason_text="History of Intolerance",
    provenance=Provenance.STRUCTURED_CODE,
)


class TestResolveStatus:

    @pytest.mark.parametrize("intensity, expected", [
        (StatinIntensity.NONE, ClinicalStatus.GAP_NEEDS_THERAPY),
        (StatinIntensity.MODERATE_OR_LOW, ClinicalStatus.OPTIMIZATION_OPPORTUNITY),
        (StatinIntensity.HIGH, ClinicalStatus.COMPLIANT),
    ])
    def test_without_exclusions(self, intensity, expected):
        assert resolve_status(intensity, []) == expected

    @pytest.mark.parametrize("intensity", list(StatinIntensity))
    def test_exclusion_always_wins(self, intensity):
        assert resolve_status(intensity, [INTOLERANCE]) == ClinicalStatus.EXCLUDED_SAFETY

    def test_total_over_all_inputs(self):
        """Every (intensity, excluded?) pair maps to exactly one known status."""
        for intensity, reasons in itertools.product(StatinIntensity, ([], [INTOLERANCE])):
            assert resolve_status(intensity, reasons) in set(ClinicalStatus)


class TestStatusResolverAgent:

    def test_absent_entries_mean_no_exclusion_and_no_statin(self):
        result = status_resolver_agent({
            "cohort": {
                "P1": CohortMember(patient_id="P1", age=50),
                "P2": CohortMember(patient_id="P2", age=60),
                "P3": CohortMember(patient_id="P3", age=70),
            },
            "exclusions": {"P2": [INTOLERANCE]},
            "therapy": {"P3": TherapyResult(intensity=StatinIntensity.HIGH, med_name="Atorvastatin", dosage_mg=40)},
        })

        statuses = {pid: r.status for pid, r in result["classifications"].items()}
        assert statuses == {
            "P1": ClinicalStatus.GAP_NEEDS_THERAPY,
            "P2": ClinicalStatus.EXCLUDED_SAFETY,
            "P3": ClinicalStatus.COMPLIANT,
        }
        assert result["classifications"]["P2"].exclusions == [INTOLERANCE]
