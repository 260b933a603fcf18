"""
Unit tests for the cohort filter.
"""

import logging
from datetime import date

import pytest

from agents.cohort_filter_agent import age_in_years, anniversary, cohort_filter_agent, within_age_window
from utils.config import build_rule_config
from utils.schemas import Diagnosis, Patient


def run_filter(rule_config, reference_date, patients, diagnoses):
    return cohort_filter_agent({
        "rule_config": rule_config,
        "reference_date": reference_date,
        "patients": patients,
        "diagnoses": diagnoses,
    })


class TestAgeArithmetic:
    """Tests for whole-year age and anniversaries."""

    def test_age_before_and_on_birthday(self):
        assert age_in_years(date(1980, 7, 1), date(2025, 6, 30)) == 44
        assert age_in_years(date(1980, 6, 30), date(2025, 6, 30)) == 45

    def test_leap_day_birth_turns_on_march_first(self):
        assert anniversary(date(1984, 2, 29), 41) == date(2025, 3, 1)
        assert age_in_years(date(1984, 2, 29), date(2025, 2, 28)) == 40
        assert age_in_years(date(1984, 2, 29), date(2025, 3, 1)) == 41

    @pytest.mark.parametrize("birth_date, included", [
        (date(1985, 6, 30), True),    # exactly 40
        (date(1985, 7, 1), False),    # 39 years 364 days
        (date(1950, 6, 30), True),    # exactly 75
        (date(1950, 6, 29), False),   # 75 years 1 day
    ])
    def test_inclusive_boundaries(self, birth_date, included):
        assert within_age_window(birth_date, date(2025, 6, 30), 40, 75) is included


class TestCohortFilterAgent:
    """Tests for cohort membership."""

    def test_boundary_patients(self, rule_config, reference_date):
        patients = [
            Patient(patient_id="A40", birth_date=date(1985, 6, 30)),
            Patient(patient_id="A39", birth_date=date(1985, 7, 1)),
            Patient(patient_id="A75", birth_date=date(1950, 6, 30)),
            Patient(patient_id="A76", birth_date=date(1950, 6, 29)),
        ]
        diagnoses = [Diagnosis(patient_id=p.patient_id, icd_code="E11.9") for p in patients]

        cohort = run_filter(rule_config, reference_date, patients, diagnoses)["cohort"]

        assert sorted(cohort) == ["A40", "A75"]
        assert cohort["A40"].age == 40
        assert cohort["A75"].age == 75

    def test_requires_diabetes_code(self, rule_config, reference_date):
        patients = [Patient(patient_id="P1", birth_date=date(1970, 1, 1))]
        diagnoses = [Diagnosis(patient_id="P1", icd_code="E10.9"), Diagnosis(patient_id="P1", icd_code="I10")]

        result = run_filter(rule_config, reference_date, patients, diagnoses)

        assert result["cohort"] == {}
        assert result["diagnostics"] == []

    def test_code_prefix_is_case_insensitive(self, rule_config, reference_date):
        patients = [Patient(patient_id="P1", birth_date=date(1970, 1, 1))]
        diagnoses = [Diagnosis(patient_id="P1", icd_code="e11.65")]

        assert "P1" in run_filter(rule_config, reference_date, patients, diagnoses)["cohort"]

    def test_multiple_diabetes_codes_counted_once(self, rule_config, reference_date):
        patients = [Patient(patient_id="P1", birth_date=date(1970, 1, 1), gender="female")]
        diagnoses = [
            Diagnosis(patient_id="P1", icd_code="E11.9"),
            Diagnosis(patient_id="P1", icd_code="E11.65"),
            Diagnosis(patient_id="P1", icd_code="E11.22"),
        ]

        cohort = run_filter(rule_config, reference_date, patients, diagnoses)["cohort"]

        assert list(cohort) == ["P1"]
        assert cohort["P1"].gender == "female"

    def test_missing_birth_date_is_reported(self, rule_config, reference_date):
        patients = [Patient(patient_id="P1", birth_date=None)]
        diagnoses = [Diagnosis(patient_id="P1", icd_code="E11.9")]

        result = run_filter(rule_config, reference_date, patients, diagnoses)

        assert result["cohort"] == {}
        assert [(d.patient_id, d.issue) for d in result["diagnostics"]] == [("P1", "insufficient_data")]

    def test_diagnosis_for_unknown_patient_is_reported(self, rule_config, reference_date):
        result = run_filter(rule_config, reference_date, [], [Diagnosis(patient_id="GHOST", icd_code="E11.9")])

        assert result["cohort"] == {}
        assert result["diagnostics"][0].issue == "unknown_patient"

    def test_summary_counts_issues_separately(self, rule_config, reference_date, caplog):
        patients = [Patient(patient_id="P1", birth_date=None)]
        diagnoses = [Diagnosis(patient_id="P1", icd_code="E11.9"), Diagnosis(patient_id="GHOST", icd_code="E11.9")]

        with caplog.at_level(logging.INFO, logger="CohortFilter"):
            run_filter(rule_config, reference_date, patients, diagnoses)

        assert "Insufficient data: 1, Unknown patient: 1" in caplog.text

    def test_configurable_code_family_and_ages(self, rule_config, reference_date):
        data = rule_config.model_dump(mode="json")
        data.update({"diabetes_code_prefixes": ["E11", "E13"], "min_age": 18, "max_age": 85})
        config = build_rule_config(data)
        patients = [
            Patient(patient_id="P1", birth_date=date(2000, 1, 1)),
            Patient(patient_id="P2", birth_date=date(1945, 1, 1)),
        ]
        diagnoses = [Diagnosis(patient_id="P1", icd_code="E13.9"), Diagnosis(patient_id="P2", icd_code="E11.9")]

        cohort = run_filter(config, reference_date, patients, diagnoses)["cohort"]

        assert sorted(cohort) == ["P1", "P2"]
