import argparse
import sys
from collections import Counter
from datetime import date

from agents.patient_ingestion_agent import load_tables
from agents.report_assembler_agent import write_report
from graph.runner import run_pipeline
from utils.config import load_rule_config, settings
from utils.errors import ConfigurationError
from utils.logger import PipelineLogger
from utils.schemas import ClinicalStatus

logger = PipelineLogger("Main")

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Statin therapy care-gap report for diabetic patients (SPD)")
    parser.add_argument("--data-dir", default=settings.DATA_DIR, help="Directory with patients/diagnoses/medications/notes CSVs")
    parser.add_argument("--output-dir", default=settings.OUTPUT_DIR)
    parser.add_argument("--reference-date", type=date.fromisoformat, default=settings.REFERENCE_DATE,
                        help="Age reference date (YYYY-MM-DD), defaults to today")
    parser.add_argument("--rules", default=settings.RULES_FILE, help="Rule configuration JSON")
    parser.add_argument("--scan-notes", action="store_true", default=settings.NOTE_SCANNING_ENABLED,
                        help="Also flag intolerance from clinical note keywords")
    parser.add_argument("--shards", type=int, default=settings.SHARD_COUNT)
    return parser.parse_args(argv)

def main(argv=None) -> int:
    """
    Main entry point for the statin care-gap pipeline.
    """
    args = parse_args(argv)
    logger.log("Starting statin care-gap pipeline")

    try:
        rule_config = load_rule_config(args.rules)
        if args.shards < 1:
            raise ConfigurationError(f"--shards must be at least 1, got {args.shards}")
    except ConfigurationError as e:
        logger.log(f"Aborting: {e}")
        return 2

    result = run_pipeline(
        raw_tables=load_tables(args.data_dir),
        reference_date=args.reference_date,
        rule_config=rule_config,
        note_scanning_enabled=args.scan_notes,
        shard_count=args.shards,
    )
    write_report(result.report, result.diagnostics, args.output_dir)

    # --- Console Output ---
    status_counts = Counter(row.clinical_status for row in result.report)
    logger.log(f"\n" + "="*50)
    logger.log(f"FINAL PIPELINE SUMMARY (as of {result.reference_date})")
    logger.log(f"="*50)
    logger.log(f"Cohort Patients: {len(result.report)}")
    for status in ClinicalStatus:
        logger.log(f"{status.value}: {status_counts.get(status, 0)}")
    logger.log(f"Diagnostics: {len(result.diagnostics)}")
    for stage, count in sorted(Counter(d.stage for d in result.diagnostics).items()):
        logger.log(f"  - {stage}: {count}")
    logger.log(f"="*50)

    for row in result.report:
        logger.log(f"Patient {row.patient_id} | Age {row.age} | Status: {row.clinical_status.value} | Med: {row.current_med}")
        if row.exclusion_details:
            logger.log(f"  - Exclusions: {row.exclusion_details}")
    return 0

if __name__ == "__main__":
    sys.exit(main())
