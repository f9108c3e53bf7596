"""Outcome records passed from the rule evaluator to output sinks, and the sink protocol."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from stacknag.engine.rules import NagMessageLevel
    from stacknag.tree.constructs import CfnResource

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NagLoggerBaseData:
    """Fields shared by every outcome of a (resource, rule) evaluation."""

    nag_pack_name: str
    resource: CfnResource
    rule_id: str
    rule_original_name: str
    rule_info: str
    rule_explanation: str
    rule_level: NagMessageLevel


@dataclass(frozen=True)
class NagLoggerComplianceData(NagLoggerBaseData):
    """The resource passed the rule."""


@dataclass(frozen=True)
class NagLoggerNotApplicableData(NagLoggerBaseData):
    """The rule does not apply to the resource."""


@dataclass(frozen=True)
class NagLoggerNonComplianceData(NagLoggerBaseData):
    """An unsuppressed finding.

    ``suppression_ignore_messages`` holds the explanations of any matching
    suppressions that an ignore condition overrode.
    """

    finding_id: str = ""
    suppression_ignore_messages: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NagLoggerSuppressedData(NagLoggerBaseData):
    """A finding covered by an honoured suppression."""

    finding_id: str = ""
    suppression_reason: str = ""


@dataclass(frozen=True)
class NagLoggerErrorData(NagLoggerBaseData):
    """The rule raised while validating the resource."""

    error_message: str = ""


@dataclass(frozen=True)
class NagLoggerSuppressedErrorData(NagLoggerErrorData):
    """The rule raised and the resulting validation failure was suppressed."""

    error_suppression_reason: str = ""


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class INagLogger(Protocol):
    """Receives exactly one callback per (resource, rule, finding) outcome."""

    def on_compliance(self, data: NagLoggerComplianceData) -> None: ...

    def on_non_compliance(self, data: NagLoggerNonComplianceData) -> None: ...

    def on_suppressed(self, data: NagLoggerSuppressedData) -> None: ...

    def on_error(self, data: NagLoggerErrorData) -> None: ...

    def on_suppressed_error(self, data: NagLoggerSuppressedErrorData) -> None: ...

    def on_not_applicable(self, data: NagLoggerNotApplicableData) -> None: ...
