"""logwitness package."""

from __future__ import annotations

from .adapter import DictRecordInterceptor, DictRecordInterceptorFactory
from .api import CaptureHook, LogCapture, LogsExpectation
from .config import CaptureConfig, config_from_dict
from .context import ContextTagFilter, current_tags, scoped_tags
from .interceptor import (
    AlreadyAttachedError,
    CaptureBuffer,
    Interceptor,
    InterceptorFactory,
    Recorder,
    SupportLevel,
    accepts_test_id,
)
from .loader import best_factory, register_factory, registered_factories, select_best
from .matchers import (
    ComparativeLogMatcher,
    LogMatcher,
    after,
    before,
    from_same_class_as,
    from_same_method_as,
    from_same_outer_class_as,
    in_same_thread_as,
    ordered_by_timestamp,
)
from .metadata import MessageAndMetadata, format_context, parse
from .predicates import LogPredicate
from .query import LogAssertionError, LogsQuery, QuantifiedLogs
from .record import CaptureRecord
from .severity import (
    RECORD_THRESHOLDS,
    STDLIB_THRESHOLDS,
    Severity,
    ThresholdTable,
    parse_severity,
)
from .stdlib import StdlibInterceptor, StdlibInterceptorFactory

__all__ = [
    "RECORD_THRESHOLDS",
    "STDLIB_THRESHOLDS",
    "AlreadyAttachedError",
    "CaptureBuffer",
    "CaptureConfig",
    "CaptureHook",
    "CaptureRecord",
    "ComparativeLogMatcher",
    "ContextTagFilter",
    "DictRecordInterceptor",
    "DictRecordInterceptorFactory",
    "Interceptor",
    "InterceptorFactory",
    "LogAssertionError",
    "LogCapture",
    "LogMatcher",
    "LogPredicate",
    "LogsExpectation",
    "LogsQuery",
    "MessageAndMetadata",
    "QuantifiedLogs",
    "Recorder",
    "Severity",
    "StdlibInterceptor",
    "StdlibInterceptorFactory",
    "SupportLevel",
    "ThresholdTable",
    "accepts_test_id",
    "after",
    "before",
    "best_factory",
    "config_from_dict",
    "current_tags",
    "format_context",
    "from_same_class_as",
    "from_same_method_as",
    "from_same_outer_class_as",
    "in_same_thread_as",
    "ordered_by_timestamp",
    "parse",
    "parse_severity",
    "register_factory",
    "registered_factories",
    "scoped_tags",
    "select_best",
]
