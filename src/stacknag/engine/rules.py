"""Rule vocabulary: compliance states, message levels, rule records, and authoring helpers."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from stacknag.tree.constructs import CfnResource

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

VALIDATION_FAILURE_ID = "NagValidationFailure"
SUPPRESSION_ID = "NagSuppression"

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class NagRuleCompliance(str, Enum):
    """The compliance of a resource in relation to a rule."""

    COMPLIANT = "Compliant"
    NON_COMPLIANT = "Non-Compliant"
    NOT_APPLICABLE = "N/A"


class NagRulePostValidationStates(str, Enum):
    """States a rule outcome can take once suppressions and errors are resolved."""

    SUPPRESSED = "Suppressed"
    UNKNOWN = "UNKNOWN"


class NagMessageLevel(str, Enum):
    """The level of the message a rule emits when triggered."""

    WARN = "Warning"
    ERROR = "Error"
    INFO = "Info"


NagRuleStates = NagRuleCompliance | NagRulePostValidationStates
NagRuleFindings = list[str]
NagRuleResult = NagRuleCompliance | NagRuleFindings
RulePredicate = Callable[["CfnResource"], NagRuleResult]

_RULE_LEVELS: frozenset[NagMessageLevel] = frozenset({NagMessageLevel.WARN, NagMessageLevel.ERROR})

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NagRule:
    """A named predicate registered in a pack.

    ``suffix`` is appended to the pack name to form the rule id and defaults
    to the predicate's ``__name__``.  When ``resource_types`` is set, resources
    of any other type are reported as not applicable without calling the
    predicate.
    """

    predicate: RulePredicate
    info: str
    explanation: str
    level: NagMessageLevel = NagMessageLevel.ERROR
    suffix: str | None = None
    resource_types: frozenset[str] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.level, NagMessageLevel) and self.level in _RULE_LEVELS:
            object.__setattr__(self, "level", NagMessageLevel(self.level))
        if self.level not in _RULE_LEVELS:
            msg = (
                f"Rule '{self.name}': invalid level '{self.level}', "
                f"must be one of {sorted(level.value for level in _RULE_LEVELS)}"
            )
            raise ValueError(msg)
        if self.resource_types is not None and not isinstance(self.resource_types, frozenset):
            object.__setattr__(self, "resource_types", frozenset(self.resource_types))

    @property
    def name(self) -> str:
        """The rule id suffix (the part after ``<pack>-``)."""
        if self.suffix:
            return self.suffix
        return str(getattr(self.predicate, "__name__", "UnnamedRule"))

    def applies_to_type(self, resource_type: str) -> bool:
        return self.resource_types is None or resource_type in self.resource_types


# ---------------------------------------------------------------------------
# Helpers for rule authors
# ---------------------------------------------------------------------------


def resolve_if_primitive(value: Any) -> Any:
    """Return *value* if it is a primitive, otherwise raise ``ValueError``.

    Use when a rule can only be decided on a concrete value: an unresolved
    intrinsic such as ``{"Ref": "Param"}`` makes the rule fail validation
    instead of silently passing.
    """
    if isinstance(value, (Mapping, list, tuple, set)):
        rendered = json.dumps(value, separators=(",", ":"), default=str)
        msg = (
            f'The parameter resolved to a non-primitive value "{rendered}", '
            "therefore the rule could not be validated."
        )
        raise ValueError(msg)
    return value


def resolve_resource_from_intrinsic(value: Any) -> Any:
    """Return the logical id referenced by ``Ref`` / ``Fn::GetAtt``, else *value*."""
    if isinstance(value, Mapping):
        ref = value.get("Ref")
        if ref is not None:
            return ref
        get_att = value.get("Fn::GetAtt")
        if isinstance(get_att, Sequence) and not isinstance(get_att, str) and get_att:
            return get_att[0]
    return value


def flatten_reference(reference: Any) -> str:
    """Flatten an intrinsic function reference into a plain string.

    ``${X}`` placeholders and ``Ref`` become ``<X>``, ``Fn::GetAtt`` becomes
    ``<Resource.Attribute>``, ``Fn::Join`` is joined, and anything else falls
    back to compact JSON.  Findings built from references stay suppressible
    with literal ``applies_to`` entries.
    """
    if reference is None:
        return ""
    if isinstance(reference, str):
        return reference.replace("${", "<").replace("}", ">")
    if isinstance(reference, Mapping):
        if reference.get("Fn::Join"):
            delimiter, items = reference["Fn::Join"]
            return str(delimiter).join(flatten_reference(item) for item in items)
        if reference.get("Fn::Sub"):
            sub = reference["Fn::Sub"]
            # Fn::Sub may carry a variable map as its second element
            if isinstance(sub, list) and sub:
                sub = sub[0]
            return flatten_reference(sub)
        if reference.get("Fn::GetAtt"):
            resource, attribute = reference["Fn::GetAtt"]
            return f"<{flatten_reference(resource)}.{flatten_reference(attribute)}>"
        if reference.get("Fn::ImportValue"):
            return flatten_reference(reference["Fn::ImportValue"])
        if reference.get("Ref"):
            return f"<{flatten_reference(reference['Ref'])}>"
    return json.dumps(reference, separators=(",", ":"), ensure_ascii=False, default=str)
