"""Rule engine: rule vocabulary, the pack evaluator, and the run orchestrator.

Only the vocabulary is re-exported here; import :mod:`stacknag.engine.pack`
and :mod:`stacknag.engine.runner` directly.
"""

from stacknag.engine.rules import (
    SUPPRESSION_ID,
    VALIDATION_FAILURE_ID,
    NagMessageLevel,
    NagRule,
    NagRuleCompliance,
    NagRulePostValidationStates,
    flatten_reference,
    resolve_if_primitive,
    resolve_resource_from_intrinsic,
)

__all__ = [
    "SUPPRESSION_ID",
    "VALIDATION_FAILURE_ID",
    "NagMessageLevel",
    "NagRule",
    "NagRuleCompliance",
    "NagRulePostValidationStates",
    "flatten_reference",
    "resolve_if_primitive",
    "resolve_resource_from_intrinsic",
]
