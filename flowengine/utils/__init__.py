"""Logging, id and time helpers shared by every layer"""
from .logger import get_logger, setup_logging, set_correlation_id, get_correlation_id
from .idgen import generate_id, generate_correlation_id, generate_execution_id, generate_task_id
from .time import utc_now, ensure_utc, format_iso, parse_iso

__all__ = [
    "get_logger",
    "setup_logging",
    "set_correlation_id",
    "get_correlation_id",
    "generate_id",
    "generate_correlation_id",
    "generate_execution_id",
    "generate_task_id",
    "utc_now",
    "ensure_utc",
    "format_iso",
    "parse_iso",
]
