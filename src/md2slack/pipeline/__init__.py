from md2slack.pipeline.context import LoggingProgress, PipelineContext, ProgressSink
from md2slack.pipeline.runner import ReportPipeline
from md2slack.pipeline.state import STAGE_NAMES, ReportState, initial_state

__all__ = [
    "STAGE_NAMES",
    "LoggingProgress",
    "PipelineContext",
    "ProgressSink",
    "ReportPipeline",
    "ReportState",
    "initial_state",
]
