import json
import os
import pandas as pd
from typing import Any, Dict, List, Sequence
from utils.logger import report_assembler_logger
from utils.schemas import (
    REPORT_SCHEMA_VERSION,
    ClassificationResult,
    CohortMember,
    DiagnosticEntry,
    ReportRow,
    TherapyResult,
)

REPORT_COLUMNS = ["patient_id", "age", "gender", "current_med", "clinical_status", "exclusion_details"]

def exclusion_details(result: ClassificationResult) -> str:
    reasons = sorted(result.exclusions, key=lambda r: r.sort_key())
    return "; ".join(r.reason_text for r in reasons)

def sort_report_rows(rows: Sequence[ReportRow]) -> List[ReportRow]:
    return sorted(rows, key=lambda r: (r.clinical_status.precedence, r.patient_id))

def build_report_rows(
    cohort: Dict[str, CohortMember],
    classifications: Dict[str, ClassificationResult],
    therapy: Dict[str, TherapyResult],
) -> List[ReportRow]:
    rows = []
    for patient_id, member in cohort.items():
        result = classifications[patient_id]
        rows.append(ReportRow(
            patient_id=patient_id,
            age=member.age,
            gender=member.gender,
            current_med=therapy.get(patient_id, TherapyResult()).display,
            clinical_status=result.status,
            exclusion_details=exclusion_details(result),
        ))
    return sort_report_rows(rows)

def report_to_dataframe(rows: Sequence[ReportRow]) -> pd.DataFrame:
    records = [row.model_dump(mode="json") for row in rows]
    return pd.DataFrame(records, columns=REPORT_COLUMNS)

def write_report(rows: Sequence[ReportRow], diagnostics: Sequence[DiagnosticEntry], output_dir: str) -> Dict[str, str]:
    """Export the report (JSON + CSV) and the diagnostics list. Returns the written paths."""
    os.makedirs(output_dir, exist_ok=True)
    paths = {
        "report_json": os.path.join(output_dir, "care_gap_report.json"),
        "report_csv": os.path.join(output_dir, "care_gap_report.csv"),
        "diagnostics": os.path.join(output_dir, "diagnostics.json"),
    }

    with open(paths["report_json"], "w", encoding="utf-8") as f:
        json.dump(
            {"schema_version": REPORT_SCHEMA_VERSION, "rows": [row.model_dump(mode="json") for row in rows]},
            f,
            indent=2,
        )
    report_to_dataframe(rows).to_csv(paths["report_csv"], index=False)
    with open(paths["diagnostics"], "w", encoding="utf-8") as f:
        json.dump([d.model_dump(mode="json") for d in diagnostics], f, indent=2)

    report_assembler_logger.log(f"Report saved to {paths['report_json']} and {paths['report_csv']}")
    report_assembler_logger.log(f"Diagnostics saved to {paths['diagnostics']}")
    return paths

def report_assembler_agent(state: Dict[str, Any]) -> Dict[str, Any]:
    """One row per cohort member, ordered by status precedence then patient id."""
    rows = build_report_rows(
        state.get("cohort", {}),
        state.get("classifications", {}),
        state.get("therapy", {}),
    )
    report_assembler_logger.log(f"Report assembled with {len(rows)} rows.")
    return {"report": rows}
