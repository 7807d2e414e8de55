"""Database utilities for the news pipeline."""

from .models import Article, Base, JobRun, JobStage, JobStatus, SourceRecord, Topic  # noqa: F401
from .session import dispose_engines, get_engine, get_sessionmaker, init_schema, session_scope  # noqa: F401

__all__ = [
    "Article",
    "Base",
    "JobRun",
    "JobStage",
    "JobStatus",
    "SourceRecord",
    "Topic",
    "dispose_engines",
    "get_engine",
    "get_sessionmaker",
    "init_schema",
    "session_scope",
]
