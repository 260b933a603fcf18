from typing import Any, Dict, List, Optional, Tuple
from utils.config import StatinRuleConfig
from utils.errors import DataQualityError
from utils.grouping import group_by_patient
from utils.logger import therapy_classifier_logger
from utils.schemas import DiagnosticEntry, MedicationOrder, MedicationStatus, StatinIntensity, TherapyResult

STAGE = "therapy_classifier"

def is_active_statin(order: MedicationOrder, config: StatinRuleConfig) -> bool:
    category = (order.med_category or "").strip().lower()
    return order.status == MedicationStatus.ACTIVE and category == config.statin_category

def threshold_key(med_name: str, thresholds: Dict[str, float]) -> Optional[str]:
    """Table entry for a drug name: exact (case-insensitive) or first word ("Atorvastatin Calcium")."""
    name = med_name.strip().lower()
    if name in thresholds:
        return name
    words = name.split()
    if words and words[0] in thresholds:
        return words[0]
    return None

def classify_order(order: MedicationOrder, config: StatinRuleConfig) -> StatinIntensity:
    if not order.med_name:
        raise DataQualityError("Statin order without a drug name", patient_id=order.patient_id, field="med_name")
    if order.dosage_mg is None:
        raise DataQualityError(
            f"Statin order {order.med_name} has a missing or malformed dose",
            patient_id=order.patient_id,
            field="dosage_mg",
        )
    key = threshold_key(order.med_name, config.high_intensity_thresholds_mg)
    if key is not None and order.dosage_mg >= config.high_intensity_thresholds_mg[key]:
        return StatinIntensity.HIGH
    return StatinIntensity.MODERATE_OR_LOW

def classify_patient(
    orders: List[MedicationOrder],
    config: StatinRuleConfig,
    diagnostics: List[DiagnosticEntry],
) -> TherapyResult:
    """
    Every active statin order is classified and the strongest wins.
    Among equally intense orders the highest dose, then the drug name, picks
    the representative; input order never matters.
    """
    candidates: List[Tuple[StatinIntensity, MedicationOrder]] = []
    for order in orders:
        if not is_active_statin(order, config):
            continue
        try:
            candidates.append((classify_order(order, config), order))
        except DataQualityError as e:
            therapy_classifier_logger.warning(f"Patient {e.patient_id}: skipping medication order. {e}")
            diagnostics.append(DiagnosticEntry(stage=STAGE, patient_id=e.patient_id, issue="malformed_order", detail=str(e)))

    if not candidates:
        return TherapyResult()

    intensity, order = sorted(
        candidates,
        key=lambda c: (-c[0].rank, -c[1].dosage_mg, c[1].med_name.lower()),
    )[0]
    return TherapyResult(intensity=intensity, med_name=order.med_name, dosage_mg=order.dosage_mg)

def therapy_classifier_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Determine statin intensity for each cohort member from active orders only.
    Inactive or historical orders are invisible here (no fill-recency check).
    """
    config = state["rule_config"]
    cohort = state.get("cohort", {})
    orders_by_patient = group_by_patient(state.get("medications", []), cohort)

    therapy: Dict[str, TherapyResult] = {}
    diagnostics: List[DiagnosticEntry] = []
    for patient_id in sorted(cohort):
        therapy[patient_id] = classify_patient(orders_by_patient.get(patient_id, []), config, diagnostics)

    counts = {intensity: 0 for intensity in StatinIntensity}
    for result in therapy.values():
        counts[result.intensity] += 1
    therapy_classifier_logger.log(
        "Therapy classification complete. "
        + ", ".join(f"{k.value}: {v}" for k, v in counts.items())
        + f", Malformed orders skipped: {len(diagnostics)}"
    )
    return {"therapy": therapy, "diagnostics": diagnostics}
