"""OrderWatch package initialization."""

from .config import ValidationConfig
from .controller import PaginationController
from .db import Database
from .fetcher import (
    EnvironmentUnusableError,
    ItemExtractionError,
    NavigationError,
    OrderWatchError,
    PageFetcher,
    PageUnavailableError,
    build_fetcher,
)
from .models import (
    ErrorEvent,
    Item,
    RawItem,
    RunMetrics,
    RunResult,
    SortingViolation,
    StopReason,
    Summary,
    ValidationReport,
)
from .runner import OrderWatchRunner, summarize
from .timestamps import normalize_timestamp
from .validator import validate_ordering

__all__ = [
    "Database",
    "EnvironmentUnusableError",
    "ErrorEvent",
    "Item",
    "ItemExtractionError",
    "NavigationError",
    "OrderWatchError",
    "OrderWatchRunner",
    "PageFetcher",
    "PageUnavailableError",
    "PaginationController",
    "RawItem",
    "RunMetrics",
    "RunResult",
    "SortingViolation",
    "StopReason",
    "Summary",
    "ValidationConfig",
    "ValidationReport",
    "build_fetcher",
    "normalize_timestamp",
    "summarize",
    "validate_ordering",
]
