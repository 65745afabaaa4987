"""Patch-integration pipeline: dispatch, remote mutation and reporting."""

from triage_bot.pipeline.dispatcher import decide
from triage_bot.pipeline.exceptions import GraphBuildError, MessageFormatError, PipelineError
from triage_bot.pipeline.graph import build_graph
from triage_bot.pipeline.handler import handle_build_result, handle_patch_result, run_pipeline
from triage_bot.pipeline.state import PipelineState, make_initial_state

__all__ = [
    "GraphBuildError",
    "MessageFormatError",
    "PipelineError",
    "PipelineState",
    "build_graph",
    "decide",
    "handle_build_result",
    "handle_patch_result",
    "make_initial_state",
    "run_pipeline",
]
