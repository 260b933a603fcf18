import logging
import sys

class PipelineLogger:
    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(message)s')
        handler.setFormatter(formatter)
        if not self.logger.handlers:
            self.logger.addHandler(handler)

    def log(self, message: str):
        self.logger.info(message)

    def warning(self, message: str):
        self.logger.warning(message)

# Global logger instances for each agent
patient_ingestion_logger = PipelineLogger("PatientIngestion")
cohort_filter_logger = PipelineLogger("CohortFilter")
exclusion_evaluator_logger = PipelineLogger("ExclusionEvaluator")
therapy_classifier_logger = PipelineLogger("TherapyClassifier")
status_resolver_logger = PipelineLogger("StatusResolver")
report_assembler_logger = PipelineLogger("ReportAssembler")
