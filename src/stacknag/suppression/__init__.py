"""Suppression declarations, storage, and ignore conditions."""

from stacknag.suppression.conditions import (
    INagSuppressionIgnore,
    SuppressionIgnoreAlways,
    SuppressionIgnoreAnd,
    SuppressionIgnoreErrors,
    SuppressionIgnoreInput,
    SuppressionIgnoreNever,
    SuppressionIgnoreOr,
)
from stacknag.suppression.store import (
    NagPackSuppression,
    RegexAppliesTo,
    StoredSuppression,
    SuppressionStore,
    assert_suppressions_are_valid,
    does_apply,
)

__all__ = [
    "INagSuppressionIgnore",
    "NagPackSuppression",
    "RegexAppliesTo",
    "StoredSuppression",
    "SuppressionIgnoreAlways",
    "SuppressionIgnoreAnd",
    "SuppressionIgnoreErrors",
    "SuppressionIgnoreInput",
    "SuppressionIgnoreNever",
    "SuppressionIgnoreOr",
    "SuppressionStore",
    "assert_suppressions_are_valid",
    "does_apply",
]
