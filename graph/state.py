import operator
from datetime import date
from typing import Annotated, Any, Dict, List, Optional, TypedDict

from utils.config import StatinRuleConfig
from utils.schemas import (
    ClassificationResult,
    ClinicalNote,
    CohortMember,
    DiagnosticEntry,
    Diagnosis,
    ExclusionReason,
    MedicationOrder,
    Patient,
    ReportRow,
    TherapyResult,
)


class PipelineState(TypedDict, total=False):
    # Inputs
    raw_tables: Dict[str, Any]
    reference_date: date
    rule_config: StatinRuleConfig
    note_scanning_enabled: bool
    note_matcher: Optional[Any]

    # Typed records from ingestion
    patients: List[Patient]
    diagnoses: List[Diagnosis]
    medications: List[MedicationOrder]
    notes: List[ClinicalNote]

    # Stage outputs
    cohort: Dict[str, CohortMember]
    exclusions: Dict[str, List[ExclusionReason]]
    therapy: Dict[str, TherapyResult]
    classifications: Dict[str, ClassificationResult]
    report: List[ReportRow]

    # Appended to by every stage, including the two parallel branches
    diagnostics: Annotated[List[DiagnosticEntry], operator.add]
