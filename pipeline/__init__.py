"""News content pipeline orchestration."""

from .orchestrator import (  # noqa: F401
    PipelineAbort,
    PipelineMetrics,
    PipelineOptions,
    PipelineRunner,
    run_pipeline,
)

__all__ = [
    "PipelineAbort",
    "PipelineMetrics",
    "PipelineOptions",
    "PipelineRunner",
    "run_pipeline",
]
