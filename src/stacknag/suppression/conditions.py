"""Suppression ignore conditions: decide when a declared suppression is overridden.

A condition's ``create_message`` returns an empty string to honour the
suppression, or a non-empty explanation of why the suppression is ignored.
Conditions combine with :class:`SuppressionIgnoreAnd` and
:class:`SuppressionIgnoreOr`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from stacknag.engine.rules import NagMessageLevel
from stacknag.errors import NagConfigurationError

if TYPE_CHECKING:
    from stacknag.tree.constructs import CfnResource

AND_SEPARATOR = "\n\tand "
OR_SEPARATOR = "\n\tor "

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SuppressionIgnoreInput:
    """Everything a condition may inspect about a matching suppression."""

    resource: CfnResource
    reason: str
    rule_id: str
    finding_id: str
    rule_level: NagMessageLevel


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class INagSuppressionIgnore(Protocol):
    """Anything with a ``create_message`` method can act as a condition."""

    def create_message(self, data: SuppressionIgnoreInput) -> str: ...


# ---------------------------------------------------------------------------
# Conditions
# ---------------------------------------------------------------------------


class SuppressionIgnoreAnd:
    """Ignore the suppression only when every condition objects."""

    def __init__(self, *conditions: INagSuppressionIgnore) -> None:
        if not conditions:
            msg = "SuppressionIgnoreAnd needs at least one suppression ignore condition"
            raise NagConfigurationError(msg)
        self.conditions = conditions

    def create_message(self, data: SuppressionIgnoreInput) -> str:
        messages: list[str] = []
        for condition in self.conditions:
            message = condition.create_message(data)
            if not message:
                return ""
            messages.append(message)
        return AND_SEPARATOR.join(messages)


class SuppressionIgnoreOr:
    """Ignore the suppression when at least one condition objects."""

    def __init__(self, *conditions: INagSuppressionIgnore) -> None:
        if not conditions:
            msg = "SuppressionIgnoreOr needs at least one suppression ignore condition"
            raise NagConfigurationError(msg)
        self.conditions = conditions

    def create_message(self, data: SuppressionIgnoreInput) -> str:
        messages = [m for m in (c.create_message(data) for c in self.conditions) if m]
        return OR_SEPARATOR.join(messages)


class SuppressionIgnoreAlways:
    """Always ignore the suppression."""

    def __init__(self, trigger_message: str) -> None:
        if not trigger_message:
            msg = "SuppressionIgnoreAlways needs a non-empty trigger message"
            raise NagConfigurationError(msg)
        self.trigger_message = trigger_message

    def create_message(self, data: SuppressionIgnoreInput) -> str:  # noqa: ARG002
        return self.trigger_message


class SuppressionIgnoreNever:
    """Never ignore the suppression."""

    def create_message(self, data: SuppressionIgnoreInput) -> str:  # noqa: ARG002
        return ""


class SuppressionIgnoreErrors:
    """Ignore suppressions of rules whose level is ERROR."""

    def create_message(self, data: SuppressionIgnoreInput) -> str:
        if data.rule_level == NagMessageLevel.ERROR:
            return (
                f"The suppression for {data.rule_id} is not allowed: the rule is "
                "categorized as an ERROR and may not be suppressed."
            )
        return ""
