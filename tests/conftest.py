"""
Shared fixtures for the care-gap pipeline tests.
"""

from datetime import date

import pandas as pd
import pytest

from utils.config import load_rule_config

REFERENCE_DATE = date(2025, 6, 30)

PATIENT_COLUMNS = ["patient_id", "birth_date", "gender"]
DIAGNOSIS_COLUMNS = ["patient_id", "icd_code", "recorded_date"]
MEDICATION_COLUMNS = ["patient_id", "med_name", "dosage_mg", "med_category", "status"]
NOTE_COLUMNS = ["patient_id", "note_text"]


def make_tables(patients=(), diagnoses=(), medications=(), notes=()):
    """Build input DataFrames from tuples in column order."""
    return {
        "patients": pd.DataFrame(list(patients), columns=PATIENT_COLUMNS),
        "diagnoses": pd.DataFrame(list(diagnoses), columns=DIAGNOSIS_COLUMNS),
        "medications": pd.DataFrame(list(medications), columns=MEDICATION_COLUMNS),
        "notes": pd.DataFrame(list(notes), columns=NOTE_COLUMNS),
    }


@pytest.fixture
def rule_config():
    return load_rule_config()


@pytest.fixture
def reference_date():
    return REFERENCE_DATE


@pytest.fixture
def scenario_tables():
    """The reference scenarios: intolerance, gap, compliant, pregnancy, optimization, liver."""
    return make_tables(
        patients=[
            ("P1001", "1969-01-15", "F"),   # 56
            ("P1002", "1977-03-01", "M"),   # 48
            ("P1003", "1965-05-05", "F"),
            ("P1004", "1978-02-10", "F"),
            ("P1005", "1960-08-08", "M"),
            ("P1006", "1955-12-12", "M"),
        ],
        diagnoses=[
            ("P1001", "E11.9", None),
            ("P1001", "M79.1", None),
            ("P1002", "E11.9", None),
            ("P1003", "E11.9", None),
            ("P1004", "E11.9", None),
            ("P1004", "O09.90", None),
            ("P1005", "E11.65", None),
            ("P1006", "E11.9", None),
            ("P1006", "K74.60", None),
        ],
        medications=[
            ("P1003", "Rosuvastatin", 40, "Statin", "Active"),
            ("P1005", "Atorvastatin", 10, "Statin", "Active"),
            ("P1006", "Atorvastatin", 80, "Statin", "Active"),
        ],
    )
