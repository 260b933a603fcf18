import datetime
from typing import Any, Dict, List, Sequence
from utils.logger import cohort_filter_logger
from utils.schemas import CohortMember, DiagnosticEntry

STAGE = "cohort_filter"

def anniversary(birth_date: datetime.date, years: int) -> datetime.date:
    """Date on which a person born on birth_date turns `years`. Feb 29 births turn on Mar 1."""
    try:
        return birth_date.replace(year=birth_date.year + years)
    except ValueError:
        return datetime.date(birth_date.year + years, 3, 1)

def age_in_years(birth_date: datetime.date, reference_date: datetime.date) -> int:
    age = reference_date.year - birth_date.year
    if reference_date < anniversary(birth_date, age):
        age -= 1
    return age

def within_age_window(birth_date: datetime.date, reference_date: datetime.date, min_age: int, max_age: int) -> bool:
    """
    Inclusive on both anniversaries: the min_age birthday counts, and so does
    the max_age birthday itself, but not the day after it.
    """
    return anniversary(birth_date, min_age) <= reference_date <= anniversary(birth_date, max_age)

def is_diabetes_code(code: str, prefixes: Sequence[str]) -> bool:
    code = code.upper()
    return any(code.startswith(prefix) for prefix in prefixes)

def cohort_filter_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Select the denominator: age-eligible patients with a Type 2 diabetes diagnosis.
    Diabetic patients that cannot be age-checked are reported, not dropped silently.
    """
    config = state["rule_config"]
    reference_date = state["reference_date"]
    patients = {p.patient_id: p for p in state.get("patients", [])}

    diabetic_ids = {
        d.patient_id
        for d in state.get("diagnoses", [])
        if d.icd_code and is_diabetes_code(d.icd_code, config.diabetes_code_prefixes)
    }

    cohort: Dict[str, CohortMember] = {}
    diagnostics: List[DiagnosticEntry] = []
    out_of_range = 0

    for patient_id in sorted(diabetic_ids):
        patient = patients.get(patient_id)
        if patient is None:
            diagnostics.append(DiagnosticEntry(
                stage=STAGE,
                patient_id=patient_id,
                issue="unknown_patient",
                detail="Diabetes diagnosis for a patient missing from the patient table",
            ))
            continue

        birth_date = patient.birth_date
        if birth_date is None or birth_date > reference_date:
            diagnostics.append(DiagnosticEntry(
                stage=STAGE,
                patient_id=patient_id,
                issue="insufficient_data",
                detail=f"Unusable birth date ({birth_date}); age cannot be determined",
            ))
            continue

        if not within_age_window(birth_date, reference_date, config.min_age, config.max_age):
            out_of_range += 1
            continue

        cohort[patient_id] = CohortMember(
            patient_id=patient_id,
            age=age_in_years(birth_date, reference_date),
            gender=patient.gender,
        )

    issue_counts = {"insufficient_data": 0, "unknown_patient": 0}
    for entry in diagnostics:
        issue_counts[entry.issue] += 1
        cohort_filter_logger.warning(f"Patient {entry.patient_id}: {entry.issue}. {entry.detail}")
    cohort_filter_logger.log(
        f"Cohort built as of {reference_date}. Diabetic: {len(diabetic_ids)}, "
        f"In cohort: {len(cohort)}, Outside age {config.min_age}-{config.max_age}: {out_of_range}, "
        f"Insufficient data: {issue_counts['insufficient_data']}, "
        f"Unknown patient: {issue_counts['unknown_patient']}"
    )
    return {"cohort": cohort, "diagnostics": diagnostics}
