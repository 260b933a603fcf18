import os
import pandas as pd
from typing import Any, Callable, Dict, List, Optional
from pydantic import ValidationError
from utils.errors import DataQualityError
from utils.logger import patient_ingestion_logger
from utils.parsing import clean_str, is_missing, parse_date, parse_dose
from utils.schemas import ClinicalNote, DiagnosticEntry, Diagnosis, MedicationOrder, MedicationStatus, Patient

STAGE = "ingestion"

TABLE_FILES = {
    "patients": "patients.csv",
    "diagnoses": "diagnoses.csv",
    "medications": "medications.csv",
    "notes": "notes.csv",
}

def load_csv_safely(path: str) -> pd.DataFrame:
    try:
        # Read everything as text so ICD codes and ids stay verbatim
        df = pd.read_csv(path, dtype=str)
        # Handle cases where pandas might read weird empty columns
        df = df.loc[:, ~df.columns.str.contains('^Unnamed')]
        patient_ingestion_logger.log(f"Loaded {path} with {len(df)} rows")
        return df
    except FileNotFoundError:
        patient_ingestion_logger.log(f"Warning: {path} not found. Skipping associated data.")
        return pd.DataFrame()
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as e:
        patient_ingestion_logger.log(f"Error loading {path}: {str(e)}")
        return pd.DataFrame()

def load_tables(data_dir: str) -> Dict[str, pd.DataFrame]:
    return {key: load_csv_safely(os.path.join(data_dir, name)) for key, name in TABLE_FILES.items()}

def clean_nans(row: Dict[str, Any]) -> Dict[str, Any]:
    """Replace NaN and blank cells with None."""
    return {k: (None if is_missing(v) else v) for k, v in row.items()}

def table_records(df: Optional[pd.DataFrame]) -> List[Dict[str, Any]]:
    if df is None or df.empty:
        return []
    return [clean_nans(row) for row in df.to_dict("records")]

def normalize_gender(value: Any) -> Optional[str]:
    g = clean_str(value)
    if g is None:
        return None
    g = g.lower()
    if g in ["f", "female", "woman", "women"]:
        return "female"
    if g in ["m", "male", "man", "men"]:
        return "male"
    return g

def _require_id(row: Dict[str, Any], table: str) -> str:
    patient_id = clean_str(row.get("patient_id"))
    if patient_id is None:
        raise DataQualityError(f"{table} row without patient_id: {row}", field="patient_id")
    return patient_id

def parse_patient(row: Dict[str, Any]) -> Patient:
    return Patient(
        patient_id=_require_id(row, "patients"),
        birth_date=parse_date(row.get("birth_date")),
        gender=normalize_gender(row.get("gender")),
    )

def parse_diagnosis(row: Dict[str, Any]) -> Diagnosis:
    return Diagnosis(
        patient_id=_require_id(row, "diagnoses"),
        icd_code=clean_str(row.get("icd_code")),
        recorded_date=parse_date(row.get("recorded_date")),
    )

def parse_status(value: Any, patient_id: str) -> MedicationStatus:
    text = (clean_str(value) or "").lower()
    for status in MedicationStatus:
        if text == status.value.lower():
            return status
    raise DataQualityError(f"Unknown medication status {value!r}", patient_id=patient_id, field="status")

def parse_medication(row: Dict[str, Any]) -> MedicationOrder:
    patient_id = _require_id(row, "medications")
    return MedicationOrder(
        patient_id=patient_id,
        med_name=clean_str(row.get("med_name")),
        dosage_mg=parse_dose(row.get("dosage_mg")),
        med_category=clean_str(row.get("med_category")),
        status=parse_status(row.get("status"), patient_id),
        last_fill_date=parse_date(row.get("last_fill_date")),
    )

def parse_note(row: Dict[str, Any]) -> ClinicalNote:
    return ClinicalNote(
        patient_id=_require_id(row, "notes"),
        note_text=clean_str(row.get("note_text")) or "",
    )

def parse_table(
    name: str,
    df: Optional[pd.DataFrame],
    parser: Callable[[Dict[str, Any]], Any],
    diagnostics: List[DiagnosticEntry],
) -> List[Any]:
    """Parse every row; a bad row becomes a diagnostic instead of failing the batch."""
    records = []
    for row in table_records(df):
        try:
            records.append(parser(row))
        except (DataQualityError, ValidationError) as e:
            patient_id = getattr(e, "patient_id", None) or clean_str(row.get("patient_id"))
            patient_ingestion_logger.warning(f"Skipping {name} row for patient {patient_id}: {e}")
            diagnostics.append(DiagnosticEntry(
                stage=STAGE,
                patient_id=patient_id,
                issue=f"invalid_{name}_row",
                detail=str(e),
            ))
    return records

def patient_ingestion_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    """
    Turn the input tables into typed records.
    Reads only state["raw_tables"]; a missing or empty mapping is an empty batch.
    """
    raw_tables = state.get("raw_tables") or {}

    diagnostics: List[DiagnosticEntry] = []

    patients = []
    seen = set()
    for patient in parse_table("patients", raw_tables.get("patients"), parse_patient, diagnostics):
        if patient.patient_id in seen:
            diagnostics.append(DiagnosticEntry(
                stage=STAGE,
                patient_id=patient.patient_id,
                issue="duplicate_patient",
                detail="Later duplicate patient row ignored",
            ))
            continue
        seen.add(patient.patient_id)
        patients.append(patient)

    diagnoses = parse_table("diagnoses", raw_tables.get("diagnoses"), parse_diagnosis, diagnostics)
    medications = parse_table("medications", raw_tables.get("medications"), parse_medication, diagnostics)
    notes = parse_table("notes", raw_tables.get("notes"), parse_note, diagnostics)

    patient_ingestion_logger.log(
        f"Ingestion complete. {len(patients)} patients, {len(diagnoses)} diagnoses, "
        f"{len(medications)} medication orders, {len(notes)} notes, {len(diagnostics)} rows skipped."
    )
    return {
        "patients": patients,
        "diagnoses": diagnoses,
        "medications": medications,
        "notes": notes,
        "diagnostics": diagnostics,
    }
