import math
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Any, Dict, List, Optional

import pandas as pd

from agents.patient_ingestion_agent import load_tables
from agents.report_assembler_agent import sort_report_rows
from graph.graph_builder import build_graph
from utils.config import StatinRuleConfig, load_rule_config, settings
from utils.errors import ConfigurationError
from utils.logger import PipelineLogger
from utils.note_matchers import NoteMatcher
from utils.parsing import clean_str
from utils.schemas import DiagnosticEntry, PipelineResult

logger = PipelineLogger("PipelineRunner")

STAGE_ORDER = ["ingestion", "cohort_filter", "exclusion_evaluator", "therapy_classifier"]

def sort_diagnostics(entries: List[DiagnosticEntry]) -> List[DiagnosticEntry]:
    def key(entry: DiagnosticEntry):
        stage = STAGE_ORDER.index(entry.stage) if entry.stage in STAGE_ORDER else len(STAGE_ORDER)
        return (stage, entry.patient_id or "", entry.issue, entry.detail)
    return sorted(entries, key=key)

def _patient_ids(df: pd.DataFrame) -> pd.Series:
    return df["patient_id"].map(clean_str)

def shard_tables(raw_tables: Dict[str, Any], shard_count: int) -> List[Dict[str, Any]]:
    """
    Split every input table into contiguous patient-id ranges.
    All rows of a patient land in the same shard; rows without a usable
    patient_id go to the first shard so they are still reported.
    """
    if shard_count <= 1:
        return [raw_tables]

    ids = set()
    for df in raw_tables.values():
        if isinstance(df, pd.DataFrame) and "patient_id" in df.columns:
            ids.update(pid for pid in _patient_ids(df) if pid is not None)
    ordered = sorted(ids)
    if not ordered:
        return [raw_tables]

    size = math.ceil(len(ordered) / shard_count)
    ranges = [set(ordered[i:i + size]) for i in range(0, len(ordered), size)]

    shards = []
    for index, id_range in enumerate(ranges):
        shard = {}
        for name, df in raw_tables.items():
            if not isinstance(df, pd.DataFrame) or df.empty:
                shard[name] = df
                continue
            if "patient_id" not in df.columns:
                shard[name] = df if index == 0 else df.iloc[0:0]
                continue
            pids = _patient_ids(df)
            mask = pids.isin(id_range)
            if index == 0:
                mask = mask | pids.isna()
            shard[name] = df[mask]
        shards.append(shard)
    return shards

def _run_shard(initial_state: Dict[str, Any]) -> Dict[str, Any]:
    app = build_graph().compile()
    return app.invoke(initial_state)

def run_pipeline(
    raw_tables: Optional[Dict[str, Any]] = None,
    reference_date: Optional[date] = None,
    rule_config: Optional[StatinRuleConfig] = None,
    note_scanning_enabled: Optional[bool] = None,
    note_matcher: Optional[NoteMatcher] = None,
    shard_count: Optional[int] = None,
) -> PipelineResult:
    """
    Run the care-gap pipeline over one batch.

    The rule configuration is loaded and validated before any patient is
    touched; a ConfigurationError aborts the run. Shards share nothing and
    their reports are merged and re-sorted afterwards.
    """
    if rule_config is None:
        rule_config = load_rule_config()
    if reference_date is None:
        reference_date = settings.REFERENCE_DATE or date.today()
    if note_scanning_enabled is None:
        note_scanning_enabled = settings.NOTE_SCANNING_ENABLED or note_matcher is not None
    if shard_count is None:
        shard_count = settings.SHARD_COUNT
    if shard_count < 1:
        raise ConfigurationError(f"shard_count must be at least 1, got {shard_count}")

    if raw_tables is None:
        raw_tables = load_tables(settings.DATA_DIR)

    shards = shard_tables(raw_tables, shard_count)
    states = [
        {
            "raw_tables": shard,
            "reference_date": reference_date,
            "rule_config": rule_config,
            "note_scanning_enabled": note_scanning_enabled,
            "note_matcher": note_matcher,
            "diagnostics": [],
        }
        for shard in shards
    ]

    logger.log(f"Running care-gap pipeline as of {reference_date} over {len(states)} shard(s)")
    if len(states) == 1:
        final_states = [_run_shard(states[0])]
    else:
        with ThreadPoolExecutor(max_workers=len(states)) as executor:
            final_states = list(executor.map(_run_shard, states))

    report = []
    classifications = {}
    diagnostics = []
    for final_state in final_states:
        report.extend(final_state.get("report", []))
        classifications.update(final_state.get("classifications", {}))
        diagnostics.extend(final_state.get("diagnostics", []))

    return PipelineResult(
        reference_date=reference_date,
        report=sort_report_rows(report),
        classifications=dict(sorted(classifications.items())),
        diagnostics=sort_diagnostics(diagnostics),
    )
