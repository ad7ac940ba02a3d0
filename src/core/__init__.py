"""
Core module for cross-cutting concerns.

This module provides:
- Structured logging configuration
- Request tracing middleware
- Authentication dependencies
- Detached task runner
- Common utilities
"""

from core.logging import configure_logging, get_logger
from core.auth import get_current_user, require_admin, require_auth, SupabaseUser
from core.tasks import TaskRunner, get_task_runner
from core.utils import parse_timestamp, safe_get, to_float, to_int, utc_now

__all__ = [
    "configure_logging",
    "get_logger",
    "get_current_user",
    "require_admin",
    "require_auth",
    "SupabaseUser",
    "TaskRunner",
    "get_task_runner",
    "parse_timestamp",
    "safe_get",
    "to_float",
    "to_int",
    "utc_now",
]
