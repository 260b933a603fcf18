from typing import Any, Dict, List, Optional, Sequence
from utils.config import ExclusionRuleSet, StatinRuleConfig
from utils.errors import DataQualityError
from utils.grouping import group_by_patient
from utils.logger import exclusion_evaluator_logger
from utils.note_matchers import KeywordNoteMatcher, NoteMatcher
from utils.schemas import (
    ClinicalNote,
    DiagnosticEntry,
    Diagnosis,
    ExclusionCategory,
    ExclusionReason,
    Provenance,
)

STAGE = "exclusion_evaluator"

def checked_code(diagnosis: Diagnosis) -> str:
    code = diagnosis.icd_code
    if code is None or not code.strip():
        raise DataQualityError("Empty diagnosis code", patient_id=diagnosis.patient_id, field="icd_code")
    return code

def match_code(code: str, rules: Sequence[ExclusionRuleSet]) -> List[ExclusionReason]:
    """Every rule set the code falls in, as structured-code reasons."""
    return [
        ExclusionReason(category=rule.category, reason_text=rule.reason_text, provenance=Provenance.STRUCTURED_CODE)
        for rule in rules
        if rule.matches(code)
    ]

def evaluate_patient(
    diagnoses: List[Diagnosis],
    notes: List[ClinicalNote],
    config: StatinRuleConfig,
    note_matcher: Optional[NoteMatcher],
    diagnostics: List[DiagnosticEntry],
) -> List[ExclusionReason]:
    """
    Deterministic Logic:
    - Each rule set contributes at most one reason, however many codes hit it.
    - Malformed codes are skipped and reported, never matched.
    - Result is ordered by category, structured codes before free text.
    """
    reasons = set()

    # 1. Structured Diagnosis Codes
    # -----------------------------
    for diagnosis in diagnoses:
        try:
            code = checked_code(diagnosis)
        except DataQualityError as e:
            exclusion_evaluator_logger.warning(f"Patient {e.patient_id}: skipping diagnosis. {e}")
            diagnostics.append(DiagnosticEntry(stage=STAGE, patient_id=e.patient_id, issue="malformed_code", detail=str(e)))
            continue
        reasons.update(match_code(code, config.exclusion_rules))

    # 2. Free-text Notes (heuristic)
    # ------------------------------
    if note_matcher is not None:
        if any(note_matcher(note.note_text) for note in notes):
            reasons.add(ExclusionReason(
                category=ExclusionCategory.INTOLERANCE,
                reason_text=config.note_scanning.reason_text,
                provenance=Provenance.FREE_TEXT,
            ))

    return sorted(reasons, key=lambda r: r.sort_key())

def exclusion_evaluator_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Scan cohort members for safety and intolerance disqualifiers.
    Patients without any reason are absent from the returned mapping.
    """
    config = state["rule_config"]
    cohort = state.get("cohort", {})

    note_matcher = None
    if state.get("note_scanning_enabled"):
        note_matcher = state.get("note_matcher") or KeywordNoteMatcher.from_config(config.note_scanning)

    diagnoses_by_patient = group_by_patient(state.get("diagnoses", []), cohort)
    notes_by_patient = group_by_patient(state.get("notes", []), cohort) if note_matcher else {}

    exclusions: Dict[str, List[ExclusionReason]] = {}
    diagnostics: List[DiagnosticEntry] = []

    for patient_id in sorted(cohort):
        reasons = evaluate_patient(
            diagnoses_by_patient.get(patient_id, []),
            notes_by_patient.get(patient_id, []),
            config,
            note_matcher,
            diagnostics,
        )
        if reasons:
            exclusions[patient_id] = reasons
            exclusion_evaluator_logger.log(
                f"Patient {patient_id}: Exclusion triggered. Reasons: {[r.reason_text for r in reasons]}"
            )

    exclusion_evaluator_logger.log(
        f"Exclusion scan complete. Excluded: {len(exclusions)}, Clear: {len(cohort) - len(exclusions)}, "
        f"Malformed codes skipped: {len(diagnostics)}, Note scanning: {'on' if note_matcher else 'off'}"
    )
    return {"exclusions": exclusions, "diagnostics": diagnostics}
