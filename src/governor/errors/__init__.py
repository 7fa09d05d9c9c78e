"""
Failure classification.

Maps raw provider failures onto a fixed taxonomy with retryability and a
suggested action, and keeps diagnostic counts of what was seen.
"""

from governor.errors.classifier import ErrorClassifier
from governor.errors.models import (
    RETRYABLE_BY_DEFAULT,
    ClassifiedError,
    ErrorKind,
    GovernorError,
    NotConfiguredError,
    UpstreamStatusError,
)
from governor.errors.rules import (
    GENERIC_RULES,
    PROVIDER_RULES,
    ClassificationRule,
    FailureSignal,
)

__all__ = [
    "GENERIC_RULES",
    "PROVIDER_RULES",
    "RETRYABLE_BY_DEFAULT",
    "ClassificationRule",
    "ClassifiedError",
    "ErrorClassifier",
    "ErrorKind",
    "FailureSignal",
    "GovernorError",
    "NotConfiguredError",
    "UpstreamStatusError",
]
