"""
Conduit Error Recovery

- Error classification (pluggable, keyword heuristic by default)
- Error type -> recovery strategy resolution
- Strategy application (retry, skip, rollback, alternative, manual)
"""

from conduit.workflow.recovery.classifier import (
    Classification,
    ErrorClassifier,
    KeywordErrorClassifier,
)
from conduit.workflow.recovery.resolver import (
    RecoveryResolver,
    RecoveryVerdict,
    default_strategies,
)

__all__ = [
    "Classification",
    "ErrorClassifier",
    "KeywordErrorClassifier",
    "RecoveryResolver",
    "RecoveryVerdict",
    "default_strategies",
]
