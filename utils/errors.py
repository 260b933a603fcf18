from typing import Optional


class CareGapError(Exception):
    """Base class for all pipeline errors."""


class DataQualityError(CareGapError):
    """
    A single input record is unusable for a rule.
    Recoverable: the record is skipped and the patient is still processed.
    """

    def __init__(self, message: str, patient_id: Optional[str] = None, field: Optional[str] = None):
        super().__init__(message)
        self.patient_id = patient_id
        self.field = field


class ConfigurationError(CareGapError):
    """Rule configuration is invalid. Raised before any patient is processed."""
