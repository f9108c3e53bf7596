"""Project configuration: ``stacknag.yml`` loading and suppression-ignore policy selection."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from stacknag.errors import NagConfigurationError
from stacknag.loggers.report import NagReportFormat
from stacknag.suppression.conditions import (
    SuppressionIgnoreAlways,
    SuppressionIgnoreErrors,
    SuppressionIgnoreNever,
)
from stacknag.suppression.store import NagPackSuppression

if TYPE_CHECKING:
    from stacknag.suppression.conditions import INagSuppressionIgnore

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CONFIG_FILE_NAME = "stacknag.yml"
DEFAULT_OUTPUT_DIR = "nag-reports"
DEFAULT_IGNORE_MESSAGE = "Suppressions are disabled for this run."
IGNORE_MODES: frozenset[str] = frozenset({"never", "always", "errors-only"})

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PathSuppression:
    """A ``suppressions:`` entry: suppress a rule on the resource(s) at *path*."""

    path: str
    suppression: NagPackSuppression
    apply_to_children: bool = False


@dataclass(frozen=True)
class StackSuppression:
    """A ``stack_suppressions:`` entry: suppress a rule on a whole stack."""

    stack: str
    suppression: NagPackSuppression
    apply_to_nested: bool = False


@dataclass(frozen=True)
class NagConfig:
    """Settings for a check run; every field has a default."""

    verbose: bool = False
    log_ignores: bool = False
    reports: bool = True
    report_formats: tuple[NagReportFormat, ...] = (NagReportFormat.CSV,)
    output_dir: str = DEFAULT_OUTPUT_DIR
    packs: tuple[str, ...] = ()
    ignore_suppressions: str = "never"  # "never" | "always" | "errors-only"
    ignore_message: str = DEFAULT_IGNORE_MESSAGE
    suppressions: tuple[PathSuppression, ...] = field(default_factory=tuple)
    stack_suppressions: tuple[StackSuppression, ...] = field(default_factory=tuple)

    def with_overrides(self, **overrides: Any) -> NagConfig:
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes) if changes else self

    def suppression_ignore_condition(self) -> INagSuppressionIgnore:
        if self.ignore_suppressions == "always":
            return SuppressionIgnoreAlways(self.ignore_message)
        if self.ignore_suppressions == "errors-only":
            return SuppressionIgnoreErrors()
        return SuppressionIgnoreNever()


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_config(path: Path | None = None, *, project_root: Path | None = None) -> NagConfig:
    """Load ``stacknag.yml`` from *path* or ``<project_root>/stacknag.yml``.

    A missing file yields the defaults.  An unreadable or non-mapping file is
    logged as a warning and also yields the defaults.

    Raises
    ------
    NagConfigurationError
        When a key is present but holds an invalid value.
    """
    if path is None:
        path = (project_root or Path.cwd()) / CONFIG_FILE_NAME
    if not path.is_file():
        return NagConfig()

    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError):
        logger.warning("Failed to read %s, using default configuration", path)
        return NagConfig()

    if data is None:
        return NagConfig()
    if not isinstance(data, dict):
        logger.warning("%s is not a mapping, using default configuration", path)
        return NagConfig()

    return parse_config(data)


def parse_config(data: dict[str, Any]) -> NagConfig:
    """Build a :class:`NagConfig` from a parsed mapping."""
    defaults = NagConfig()
    kwargs: dict[str, Any] = {}

    for key in ("verbose", "log_ignores", "reports"):
        if key in data:
            kwargs[key] = _as_bool(data[key], key)

    if "report_formats" in data:
        raw_formats = _as_list(data["report_formats"], "report_formats")
        try:
            kwargs["report_formats"] = tuple(NagReportFormat(str(f).lower()) for f in raw_formats)
        except ValueError as exc:
            msg = f"report_formats: {exc}"
            raise NagConfigurationError(msg) from exc

    if "output_dir" in data:
        kwargs["output_dir"] = str(data["output_dir"])

    if "packs" in data:
        kwargs["packs"] = tuple(str(p) for p in _as_list(data["packs"], "packs"))

    if "ignore_suppressions" in data:
        mode = str(data["ignore_suppressions"])
        if mode not in IGNORE_MODES:
            msg = f"ignore_suppressions: '{mode}' must be one of {sorted(IGNORE_MODES)}"
            raise NagConfigurationError(msg)
        kwargs["ignore_suppressions"] = mode

    if "ignore_message" in data:
        kwargs["ignore_message"] = str(data["ignore_message"])

    mode = kwargs.get("ignore_suppressions", defaults.ignore_suppressions)
    message = kwargs.get("ignore_message", defaults.ignore_message)
    if mode == "always" and not message.strip():
        msg = "ignore_message: must not be empty when ignore_suppressions is 'always'"
        raise NagConfigurationError(msg)

    if "suppressions" in data:
        entries = _as_list(data["suppressions"], "suppressions")
        kwargs["suppressions"] = tuple(_parse_path_suppression(e) for e in entries)

    if "stack_suppressions" in data:
        entries = _as_list(data["stack_suppressions"], "stack_suppressions")
        kwargs["stack_suppressions"] = tuple(_parse_stack_suppression(e) for e in entries)

    return replace(defaults, **kwargs)


def _parse_path_suppression(entry: Any) -> PathSuppression:
    if not isinstance(entry, dict) or not isinstance(entry.get("path"), str):
        msg = f"suppressions: entry {entry!r} needs a 'path'"
        raise NagConfigurationError(msg)
    return PathSuppression(
        path=entry["path"],
        suppression=NagPackSuppression.from_dict(entry),
        apply_to_children=_as_bool(entry.get("apply_to_children", False), "apply_to_children"),
    )


def _parse_stack_suppression(entry: Any) -> StackSuppression:
    if not isinstance(entry, dict) or not isinstance(entry.get("stack"), str):
        msg = f"stack_suppressions: entry {entry!r} needs a 'stack'"
        raise NagConfigurationError(msg)
    return StackSuppression(
        stack=entry["stack"],
        suppression=NagPackSuppression.from_dict(entry),
        apply_to_nested=_as_bool(entry.get("apply_to_nested", False), "apply_to_nested"),
    )


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    msg = f"{key}: expected true or false, got {value!r}"
    raise NagConfigurationError(msg)


def _as_list(value: Any, key: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        msg = f"{key}: expected a list, got {type(value).__name__}"
        raise NagConfigurationError(msg)
    return value
