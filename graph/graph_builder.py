from langgraph.graph import StateGraph, END
from graph.state import PipelineState
from agents.patient_ingestion_agent import patient_ingestion_agent
from agents.cohort_filter_agent import cohort_filter_agent
from agents.exclusion_evaluator_agent import exclusion_evaluator_agent
from agents.therapy_classifier_agent import therapy_classifier_agent
from agents.status_resolver_agent import status_resolver_agent
from agents.report_assembler_agent import report_assembler_agent
from utils.logger import PipelineLogger

logger = PipelineLogger("GraphBuilder")

def build_graph():
    """
    Build the LangGraph for the statin care-gap pipeline.

    Exclusion evaluation and therapy classification read disjoint inputs and
    write disjoint keys, so they run as parallel branches and the status
    resolver waits for both.
    """
    graph = StateGraph(PipelineState)

    # Add nodes
    graph.add_node("patient_ingestion", patient_ingestion_agent)
    graph.add_node("cohort_filter", cohort_filter_agent)
    graph.add_node("exclusion_evaluator", exclusion_evaluator_agent)
    graph.add_node("therapy_classifier", therapy_classifier_agent)
    graph.add_node("status_resolver", status_resolver_agent)
    graph.add_node("report_assembler", report_assembler_agent)

    # Add edges
    graph.add_edge("patient_ingestion", "cohort_filter")

    # Fan out
    graph.add_edge("cohort_filter", "exclusion_evaluator")
    graph.add_edge("cohort_filter", "therapy_classifier")

    # Fan in
    graph.add_edge(["exclusion_evaluator", "therapy_classifier"], "status_resolver")

    graph.add_edge("status_resolver", "report_assembler")
    graph.add_edge("report_assembler", END)

    # Set entry point
    graph.set_entry_point("patient_ingestion")

    logger.log("LangGraph built successfully")
    return graph
