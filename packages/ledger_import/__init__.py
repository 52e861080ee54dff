"""Public interface for the ``ledger_import`` package.

Re-exports the API functions, service classes, and result types that make up
the stable import surface. There is no runtime logic here.
"""

from .api import (
    analyze_categorization,
    get_matching_stats,
    match_merchant,
    match_merchant_batch,
    preview_import,
    run_import,
    run_imports,
)
from .categorize import CategoryMatcher
from .duplicates import DuplicateDetector
from .errors import (
    ConstraintKind,
    LedgerImportError,
    StorageConstraintViolation,
    StorageError,
    TransientStorageFailure,
    ValidationError,
)
from .importer import BatchImporter
from .models import (
    CandidateRecord,
    CategorizationAnalysis,
    CategoryMatch,
    CategoryType,
    ImportResult,
    MatchingStats,
    MatchMethod,
    MethodStats,
    PreviewResult,
    TransactionPreview,
)
from .preview import PreviewService
from .settings import ImportSettings, MatcherSettings

__all__ = [
    # API
    "analyze_categorization",
    "get_matching_stats",
    "match_merchant",
    "match_merchant_batch",
    "preview_import",
    "run_import",
    "run_imports",
    # Services
    "BatchImporter",
    "CategoryMatcher",
    "DuplicateDetector",
    "PreviewService",
    # Settings
    "ImportSettings",
    "MatcherSettings",
    # Models / types
    "CandidateRecord",
    "CategorizationAnalysis",
    "CategoryMatch",
    "CategoryType",
    "ImportResult",
    "MatchMethod",
    "MatchingStats",
    "MethodStats",
    "PreviewResult",
    "TransactionPreview",
    # Errors
    "ConstraintKind",
    "LedgerImportError",
    "StorageConstraintViolation",
    "StorageError",
    "TransientStorageFailure",
    "ValidationError",
]
