"""Suppression store: declare, validate, persist, and match rule suppressions.

Suppressions live in a side-table keyed by construct; the constructs
themselves are never mutated.  Reasons containing non-ASCII characters
are stored base64 encoded and decoded again on read.
"""

from __future__ import annotations

import base64
import functools
import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from stacknag.engine.rules import VALIDATION_FAILURE_ID
from stacknag.errors import NagConfigurationError, SuppressionPathError
from stacknag.tree.constructs import CfnResource, Construct, Stack

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MIN_REASON_LENGTH = 10
SUPPRESSION_HELP = "See the suppression section of the README for how to suppress a rule."

_REGEX_LITERAL = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)
_REGEX_FLAGS: dict[str, re.RegexFlag] = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}
# Flags that are meaningful in JavaScript literals but have no effect on a single test.
_IGNORED_REGEX_FLAGS = frozenset({"g", "u", "y", "d"})

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RegexAppliesTo:
    """An ``applies_to`` entry matching findings with a ``/pattern/flags`` literal."""

    regex: str

    def compile(self) -> re.Pattern[str]:
        """Compile the literal, raising ``ValueError`` when it is malformed."""
        return _compile_regex_literal(self.regex)

    def matches(self, finding_id: str) -> bool:
        return self.compile().search(finding_id) is not None


@functools.lru_cache(maxsize=256)
def _compile_regex_literal(literal: str) -> re.Pattern[str]:
    match = _REGEX_LITERAL.match(literal)
    if match is None:
        msg = f"Invalid regular expression [{literal}]"
        raise ValueError(msg)
    pattern, flag_chars = match.groups()
    flags = 0
    for char in flag_chars:
        if char in _REGEX_FLAGS:
            flags |= _REGEX_FLAGS[char]
        elif char not in _IGNORED_REGEX_FLAGS:
            msg = f"Invalid regular expression [{literal}]"
            raise ValueError(msg)
    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        msg = f"Invalid regular expression [{literal}]"
        raise ValueError(msg) from exc


AppliesTo = str | RegexAppliesTo


def _normalize_applies_to(raw: object, context: str) -> tuple[AppliesTo, ...] | None:
    if raw is None:
        return None
    if isinstance(raw, (str, Mapping, RegexAppliesTo)) or not isinstance(raw, Sequence):
        msg = f"{context}: 'applies_to' must be a list"
        raise NagConfigurationError(msg)
    entries: list[AppliesTo] = []
    for item in raw:
        if isinstance(item, (str, RegexAppliesTo)):
            entries.append(item)
        elif isinstance(item, Mapping) and isinstance(item.get("regex"), str):
            entries.append(RegexAppliesTo(regex=item["regex"]))
        else:
            msg = f"{context}: 'applies_to' entries must be strings or {{regex: ...}} mappings"
            raise NagConfigurationError(msg)
    return tuple(entries)


@dataclass(frozen=True)
class NagPackSuppression:
    """A user declaration that a rule should not be reported for a resource.

    ``applies_to`` narrows the suppression to individual findings of the
    rule; ``None`` suppresses every finding.
    """

    id: str
    reason: str
    applies_to: tuple[AppliesTo, ...] | None = None

    def __post_init__(self) -> None:
        if self.applies_to is not None:
            normalized = _normalize_applies_to(self.applies_to, f"Suppression '{self.id}'")
            object.__setattr__(self, "applies_to", normalized)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> NagPackSuppression:
        """Build a suppression from a ``{id, reason, applies_to}`` mapping."""
        rule_id = data.get("id")
        reason = data.get("reason")
        if not isinstance(rule_id, str) or not rule_id.strip():
            msg = f"Suppression {dict(data)!r} is missing a non-empty 'id'"
            raise NagConfigurationError(msg)
        if not isinstance(reason, str):
            msg = f"Suppression '{rule_id}' is missing a 'reason'"
            raise NagConfigurationError(msg)
        raw_applies_to = data.get("applies_to", data.get("appliesTo"))
        applies_to = _normalize_applies_to(raw_applies_to, f"Suppression '{rule_id}'")
        return cls(id=rule_id, reason=reason, applies_to=applies_to)


@dataclass(frozen=True)
class StoredSuppression:
    """A suppression as held in the store, with its reason possibly encoded."""

    id: str
    reason: str
    applies_to: tuple[AppliesTo, ...] | None = None
    is_reason_encoded: bool = False

    @classmethod
    def from_suppression(cls, suppression: NagPackSuppression) -> StoredSuppression:
        if any(ord(ch) > 127 for ch in suppression.reason):
            encoded = base64.b64encode(suppression.reason.encode("utf-8")).decode("ascii")
            return cls(
                id=suppression.id,
                reason=encoded,
                applies_to=suppression.applies_to,
                is_reason_encoded=True,
            )
        return cls(id=suppression.id, reason=suppression.reason, applies_to=suppression.applies_to)

    @property
    def decoded_reason(self) -> str:
        if self.is_reason_encoded:
            return base64.b64decode(self.reason).decode("utf-8")
        return self.reason

    def to_suppression(self) -> NagPackSuppression:
        return NagPackSuppression(id=self.id, reason=self.decoded_reason, applies_to=self.applies_to)


# ---------------------------------------------------------------------------
# Validation and matching
# ---------------------------------------------------------------------------


def _suppression_format_error(suppression: NagPackSuppression) -> str:
    errors = ""
    if "[" in suppression.id:
        finding = re.search(r"\[.*\]", suppression.id)
        shown = finding.group(0) if finding else suppression.id
        errors += (
            f"The suppression 'id' contains a finding '{shown}'. "
            "A finding must be suppressed using 'applies_to'."
        )
    if len(suppression.reason) < MIN_REASON_LENGTH:
        errors += f"The suppression must have a 'reason' of {MIN_REASON_LENGTH} characters or more."
    for entry in suppression.applies_to or ():
        if isinstance(entry, RegexAppliesTo):
            try:
                entry.compile()
            except ValueError as exc:
                errors += str(exc)
    if errors:
        return f"\n\tError(s) detected in suppression with 'id' {suppression.id}. {errors}"
    return ""


def assert_suppressions_are_valid(owner: str, suppressions: Iterable[NagPackSuppression]) -> None:
    """Raise ``NagConfigurationError`` listing every malformed suppression."""
    errors = [e for e in (_suppression_format_error(s) for s in suppressions) if e]
    if errors:
        msg = f"{owner}: {''.join(errors)}\n{SUPPRESSION_HELP}"
        raise NagConfigurationError(msg)


def does_apply(suppression: NagPackSuppression, rule_id: str, finding_id: str) -> bool:
    """Return True if *suppression* covers the finding *finding_id* of *rule_id*.

    A coarse suppression of a rule also covers the validation failures that
    rule raises: validation failures are reported under
    ``VALIDATION_FAILURE_ID`` with the failing rule id as their finding.
    """
    if (
        rule_id == VALIDATION_FAILURE_ID
        and finding_id == suppression.id
        and suppression.applies_to is None
    ):
        return True

    if rule_id != suppression.id:
        return False

    if suppression.applies_to is None:
        return True

    if not finding_id:
        return False

    for entry in suppression.applies_to:
        if isinstance(entry, str):
            if entry == finding_id:
                return True
        elif entry.matches(finding_id):
            return True
    return False


def _merge_applies_to(
    current: tuple[AppliesTo, ...] | None, new: tuple[AppliesTo, ...] | None
) -> tuple[AppliesTo, ...] | None:
    if current is None or new is None:
        return None
    merged = list(current)
    for entry in new:
        if entry not in merged:
            merged.append(entry)
    return tuple(merged)


def _merge(records: list[StoredSuppression], suppressions: Sequence[NagPackSuppression]) -> None:
    for suppression in suppressions:
        new = StoredSuppression.from_suppression(suppression)
        for idx, existing in enumerate(records):
            if existing.id == new.id and existing.decoded_reason == suppression.reason:
                merged = _merge_applies_to(existing.applies_to, new.applies_to)
                if merged != existing.applies_to:
                    records[idx] = replace(existing, applies_to=merged)
                break
        else:
            records.append(new)


def _as_construct_list(constructs: Construct | Sequence[Construct]) -> list[Construct]:
    if isinstance(constructs, Construct):
        return [constructs]
    items = list(constructs)
    if not items:
        msg = "At least one construct is required to add suppressions"
        raise NagConfigurationError(msg)
    return items


def _as_path_list(paths: str | Sequence[str]) -> list[str]:
    items = [paths] if isinstance(paths, str) else list(paths)
    if not items:
        msg = "At least one path is required to add suppressions"
        raise NagConfigurationError(msg)
    for path in items:
        if not isinstance(path, str) or not path.strip("/"):
            msg = f"Suppression path {path!r} must be a non-empty string"
            raise NagConfigurationError(msg)
    return items


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SuppressionStore:
    """Side-table of suppressions declared for resources and stacks."""

    def __init__(self) -> None:
        self._resources: dict[Construct, list[StoredSuppression]] = {}
        self._stacks: dict[Stack, list[StoredSuppression]] = {}

    # -- declaration --------------------------------------------------------

    def add_resource_suppressions(
        self,
        constructs: Construct | Sequence[Construct],
        suppressions: Sequence[NagPackSuppression],
        *,
        apply_to_children: bool = False,
    ) -> None:
        """Add suppressions to resources and, optionally, to all their descendants.

        A construct that is not itself a resource is suppressed through its
        default child (``Resource`` / ``Default``); anything else is skipped.
        """
        targets = _as_construct_list(constructs)
        for construct in targets:
            assert_suppressions_are_valid(construct.path or "<root>", suppressions)

        seen: set[Construct] = set()
        for construct in targets:
            candidates = construct.find_all() if apply_to_children else [construct]
            for child in candidates:
                possible = child.default_child or child
                if not isinstance(possible, CfnResource) or possible in seen:
                    continue
                seen.add(possible)
                _merge(self._resources.setdefault(possible, []), suppressions)
                logger.debug(
                    "Added %d suppression(s) to %s", len(suppressions), possible.path
                )

    def add_resource_suppressions_by_path(
        self,
        root: Construct,
        paths: str | Sequence[str],
        suppressions: Sequence[NagPackSuppression],
        *,
        apply_to_children: bool = False,
    ) -> None:
        """Add suppressions to the constructs at *paths* under *root*.

        A leading ``/`` is ignored and ``<path>/Resource`` addresses the same
        resource as ``<path>``.  Every path must resolve before anything is
        stored.
        """
        path_list = _as_path_list(paths)
        assert_suppressions_are_valid(root.path or "<root>", suppressions)

        everything = root.find_all()
        matched: list[Construct] = []
        for path in path_list:
            fixed = path[1:] if path.startswith("/") else path
            hits = [
                c for c in everything if c.path == fixed or (c.path and f"{c.path}/Resource" == fixed)
            ]
            if not hits:
                raise SuppressionPathError(path)
            matched.extend(h for h in hits if h not in matched)

        self.add_resource_suppressions(matched, suppressions, apply_to_children=apply_to_children)

    def add_stack_suppressions(
        self,
        stack: Stack,
        suppressions: Sequence[NagPackSuppression],
        *,
        apply_to_nested_stacks: bool = False,
    ) -> None:
        """Add suppressions to a stack and, optionally, every stack nested in it."""
        assert_suppressions_are_valid(stack.path, suppressions)
        stacks = [stack, *stack.nested_stacks] if apply_to_nested_stacks else [stack]
        for target in stacks:
            _merge(self._stacks.setdefault(target, []), suppressions)
            logger.debug("Added %d stack suppression(s) to %s", len(suppressions), target.path)

    # -- lookup -------------------------------------------------------------

    def resource_suppressions(self, construct: Construct) -> list[StoredSuppression]:
        """Stored records for a resource, in declaration order."""
        return list(self._resources.get(construct, []))

    def stack_suppressions(self, stack: Stack) -> list[StoredSuppression]:
        """Stored records for a stack, in declaration order."""
        return list(self._stacks.get(stack, []))

    def get_suppressions(self, resource: CfnResource) -> list[NagPackSuppression]:
        """Decoded suppressions for a resource followed by those of its stack."""
        records = self.resource_suppressions(resource)
        stack = resource.stack
        if stack is not None:
            records += self.stack_suppressions(stack)
        return [r.to_suppression() for r in records]
