from datetime import date
from enum import Enum
from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional

REPORT_SCHEMA_VERSION = "1"


class MedicationStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class ExclusionCategory(str, Enum):
    # Declaration order is the reporting order
    INTOLERANCE = "Intolerance"
    PREGNANCY = "PregnancyContraindication"
    LIVER_DISEASE = "LiverDiseaseContraindication"


class Provenance(str, Enum):
    STRUCTURED_CODE = "structured_code"
    FREE_TEXT = "free_text"


class StatinIntensity(str, Enum):
    NONE = "None"
    MODERATE_OR_LOW = "ModerateOrLow"
    HIGH = "High"

    @property
    def rank(self) -> int:
        return _INTENSITY_RANK[self]


_INTENSITY_RANK = {
    StatinIntensity.NONE: 0,
    StatinIntensity.MODERATE_OR_LOW: 1,
    StatinIntensity.HIGH: 2,
}


class ClinicalStatus(str, Enum):
    # Declared in precedence order; these strings are the report wire contract
    EXCLUDED_SAFETY = "ExcludedSafety"
    GAP_NEEDS_THERAPY = "GapNeedsTherapy"
    OPTIMIZATION_OPPORTUNITY = "OptimizationOpportunity"
    COMPLIANT = "Compliant"

    @property
    def precedence(self) -> int:
        return list(ClinicalStatus).index(self)


class Patient(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    birth_date: Optional[date] = None
    gender: Optional[str] = None


class Diagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    icd_code: Optional[str] = None
    recorded_date: Optional[date] = None


class MedicationOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    med_name: Optional[str] = None
    dosage_mg: Optional[float] = None
    med_category: Optional[str] = None
    status: MedicationStatus
    # Reserved: no fill-recency check is performed
    last_fill_date: Optional[date] = None


class ClinicalNote(BaseModel):
    model_config = ConfigDict(frozen=True)

    patient_id: str
    note_text: str = ""


class ExclusionReason(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: ExclusionCategory
    reason_text: str
    provenance: Provenance

    def sort_key(self):
        return (list(ExclusionCategory).index(self.category), list(Provenance).index(self.provenance))


class CohortMember(BaseModel):
    patient_id: str
    age: int
    gender: Optional[str] = None


class TherapyResult(BaseModel):
    intensity: StatinIntensity = StatinIntensity.NONE
    med_name: Optional[str] = None
    dosage_mg: Optional[float] = None

    @property
    def display(self) -> str:
        if self.intensity == StatinIntensity.NONE or not self.med_name:
            return "None"
        return f"{self.med_name} {self.dosage_mg:g}mg"


class ClassificationResult(BaseModel):
    patient_id: str
    intensity: StatinIntensity
    exclusions: List[ExclusionReason] = []
    status: ClinicalStatus


class ReportRow(BaseModel):
    patient_id: str
    age: int
    gender: Optional[str] = None
    current_med: str = "None"
    clinical_status: ClinicalStatus
    exclusion_details: str = ""


class DiagnosticEntry(BaseModel):
    """Something the pipeline could not use, surfaced instead of silently dropped."""
    stage: str
    patient_id: Optional[str] = None
    issue: str
    detail: str = ""


class PipelineResult(BaseModel):
    reference_date: date
    report: List[ReportRow] = []
    classifications: Dict[str, ClassificationResult] = {}
    diagnostics: List[DiagnosticEntry] = []
