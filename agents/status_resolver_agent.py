from typing import Any, Dict, Sequence
from utils.logger import status_resolver_logger
from utils.schemas import ClassificationResult, ClinicalStatus, ExclusionReason, StatinIntensity, TherapyResult

def resolve_status(intensity: StatinIntensity, exclusions: Sequence[ExclusionReason]) -> ClinicalStatus:
    """
    Fixed precedence. Any exclusion wins, so an excluded patient is never
    reported as a gap and never triggers a prescribing alert.
    """
    if exclusions:
        return ClinicalStatus.EXCLUDED_SAFETY
    if intensity == StatinIntensity.NONE:
        return ClinicalStatus.GAP_NEEDS_THERAPY
    if intensity == StatinIntensity.MODERATE_OR_LOW:
        return ClinicalStatus.OPTIMIZATION_OPPORTUNITY
    return ClinicalStatus.COMPLIANT

def status_resolver_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    cohort = state.get("cohort", {})
    exclusions = state.get("exclusions", {})
    therapy = state.get("therapy", {})

    classifications: Dict[str, ClassificationResult] = {}
    for patient_id in sorted(cohort):
        # Absent from either mapping means no exclusion / no statin
        reasons = exclusions.get(patient_id, [])
        intensity = therapy.get(patient_id, TherapyResult()).intensity
        classifications[patient_id] = ClassificationResult(
            patient_id=patient_id,
            intensity=intensity,
            exclusions=list(reasons),
            status=resolve_status(intensity, reasons),
        )

    counts = {status: 0 for status in ClinicalStatus}
    for result in classifications.values():
        counts[result.status] += 1
    status_resolver_logger.log(
        "Status resolution complete. " + ", ".join(f"{k.value}: {v}" for k, v in counts.items())
    )
    return {"classifications": classifications}
