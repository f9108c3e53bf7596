"""Check orchestrator: load a template, run packs, write reports, format results."""

from __future__ import annotations

import importlib
import json
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from stacknag.engine.pack import NagPack
from stacknag.errors import NagConfigurationError, TemplateError
from stacknag.tree.constructs import CfnResource, Stack
from stacknag.tree.loader import load_template

if TYPE_CHECKING:
    from collections.abc import Sequence

    from stacknag.config import NagConfig
    from stacknag.suppression.store import SuppressionStore
    from stacknag.tree.constructs import App

# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class RunError(Exception):
    """Raised when a check cannot run because of a template or configuration error."""


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

_LEVEL_ORDER = {"error": 0, "warning": 1, "info": 2}


@dataclass(frozen=True)
class NagFinding:
    """One annotation left on a construct by a pack."""

    level: str  # "error" | "warning" | "info"
    path: str
    message: str


@dataclass
class NagRunResult:
    """Result of a check run."""

    findings: list[NagFinding] = field(default_factory=list)
    resources_scanned: int = 0
    rules_evaluated: int = 0
    packs: list[str] = field(default_factory=list)
    report_files: list[Path] = field(default_factory=list)
    elapsed_ms: float = 0.0

    @property
    def error_count(self) -> int:
        return sum(1 for f in self.findings if f.level == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for f in self.findings if f.level == "warning")


# ---------------------------------------------------------------------------
# Pack loading
# ---------------------------------------------------------------------------


def load_pack(spec: str, **pack_kwargs: Any) -> NagPack:
    """Resolve ``module:attr`` to a :class:`NagPack`.

    *attr* may name a pack instance (used as-is, with only its suppression
    store replaced), a ``NagPack`` subclass, or a factory; the latter two
    are called with *pack_kwargs*.

    Raises
    ------
    RunError
        When the module or attribute cannot be found or does not produce a pack.
    """
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        msg = f"Pack '{spec}' must be given as 'module:attr'"
        raise RunError(msg)
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        msg = f"Cannot import pack module '{module_name}': {exc}"
        raise RunError(msg) from exc

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            msg = f"Pack '{spec}': '{module_name}' has no attribute '{attr}'"
            raise RunError(msg) from exc

    if isinstance(target, NagPack):
        if "suppressions" in pack_kwargs:
            target.suppressions = pack_kwargs["suppressions"]
        return target
    if callable(target):
        try:
            pack = target(**pack_kwargs)
        except TypeError as exc:
            msg = f"Pack '{spec}' could not be constructed: {exc}"
            raise RunError(msg) from exc
        if isinstance(pack, NagPack):
            return pack
    msg = f"Pack '{spec}' is not a NagPack, a NagPack subclass, or a factory returning one"
    raise RunError(msg)


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def run_check(
    template_path: Path,
    *,
    config: NagConfig,
    packs: Sequence[str | NagPack] | None = None,
) -> NagRunResult:
    """Load *template_path*, apply every pack, and collect the annotations.

    Parameters
    ----------
    template_path:
        YAML or JSON template to check.
    config:
        Run settings; suppressions listed in it are added on top of those
        declared in the template metadata.
    packs:
        ``module:attr`` specs or ready pack instances.  When *None* the
        packs listed in ``config.packs`` are used.

    Returns
    -------
    NagRunResult
        Annotations, counts, written report files, and timing.

    Raises
    ------
    RunError
        When the template, the configuration, or a pack cannot be loaded.
    """
    start = time.monotonic()

    try:
        app, store = load_template(template_path)
        _apply_config_suppressions(app, store, config)
        ignore_condition = config.suppression_ignore_condition()
    except (TemplateError, NagConfigurationError) as exc:
        raise RunError(str(exc)) from exc

    pack_kwargs: dict[str, Any] = {
        "verbose": config.verbose,
        "log_ignores": config.log_ignores,
        "reports": config.reports,
        "report_formats": config.report_formats,
        "suppression_ignore_condition": ignore_condition,
        "suppressions": store,
    }
    resolved: list[NagPack] = []
    for spec in packs if packs is not None else config.packs:
        if isinstance(spec, NagPack):
            spec.suppressions = store
            resolved.append(spec)
            continue
        try:
            resolved.append(load_pack(spec, **pack_kwargs))
        except NagConfigurationError as exc:
            raise RunError(str(exc)) from exc

    result = NagRunResult(
        packs=[p.pack_name for p in resolved],
        resources_scanned=sum(1 for c in app.find_all() if isinstance(c, CfnResource)),
    )
    for pack in resolved:
        pack.reset_reports()
        pack.check(app)
        result.rules_evaluated += len(pack.rules)
        if config.reports:
            result.report_files.extend(pack.write_reports(Path(config.output_dir)))

    for construct in app.find_all():
        for annotation in construct.annotations:
            result.findings.append(
                NagFinding(level=annotation.level, path=construct.path, message=annotation.message)
            )
    result.findings.sort(key=lambda f: _LEVEL_ORDER.get(f.level, len(_LEVEL_ORDER)))
    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result


def _apply_config_suppressions(app: App, store: SuppressionStore, config: NagConfig) -> None:
    for entry in config.suppressions:
        store.add_resource_suppressions_by_path(
            app, entry.path, [entry.suppression], apply_to_children=entry.apply_to_children
        )
    stacks = [c for c in app.find_all() if isinstance(c, Stack)]
    for stack_entry in config.stack_suppressions:
        matches = [
            s for s in stacks if stack_entry.stack in (s.path, s.stack_name, s.node_id)
        ]
        if not matches:
            msg = f"Stack suppression target '{stack_entry.stack}' did not match any stack"
            raise NagConfigurationError(msg)
        for stack in matches:
            store.add_stack_suppressions(
                stack, [stack_entry.suppression], apply_to_nested_stacks=stack_entry.apply_to_nested
            )


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------


def _first_line(message: str) -> str:
    return message.strip().splitlines()[0] if message.strip() else ""


def format_rich(result: NagRunResult) -> str:
    """Format a NagRunResult as human-readable text.

    Example output::

        Packs: Demo
        Resources: 3 scanned, 2 rules evaluated

        x Stack1/Bucket
          Demo-S1: The S3 Bucket has server access logs disabled.

        1 error(s), 0 warning(s) (2 rules evaluated, 0.0s)
    """
    lines: list[str] = []
    lines.append(f"Packs: {', '.join(result.packs) if result.packs else '(none)'}")
    lines.append(
        f"Resources: {result.resources_scanned} scanned, {result.rules_evaluated} rules evaluated"
    )
    lines.append("")

    markers = {"error": "✗", "warning": "!", "info": "i"}
    for finding in result.findings:
        lines.append(f"{markers.get(finding.level, '?')} {finding.path}")
        for message_line in finding.message.rstrip("\n").splitlines():
            lines.append(f"  {message_line}")
        lines.append("")

    for report in result.report_files:
        lines.append(f"Report: {report}")
    if result.report_files:
        lines.append("")

    elapsed_str = f"{result.elapsed_ms / 1000:.1f}s"
    if result.error_count or result.warning_count:
        lines.append(
            f"{result.error_count} error(s), {result.warning_count} warning(s) "
            f"({result.rules_evaluated} rules evaluated, {elapsed_str})"
        )
    else:
        lines.append(
            f"✓ No findings ({result.rules_evaluated} rules evaluated, {elapsed_str})"
        )
    return "\n".join(lines)


def format_json(result: NagRunResult) -> str:
    """Format a NagRunResult as structured JSON with ``findings`` and ``summary``."""
    output: dict[str, object] = {
        "findings": [
            {"level": f.level, "path": f.path, "message": f.message.rstrip("\n")}
            for f in result.findings
        ],
        "summary": {
            "packs": result.packs,
            "resources_scanned": result.resources_scanned,
            "rules_evaluated": result.rules_evaluated,
            "errors": result.error_count,
            "warnings": result.warning_count,
            "report_files": [str(p) for p in result.report_files],
            "elapsed_ms": result.elapsed_ms,
        },
    }
    return json.dumps(output, indent=2)


def format_porcelain(result: NagRunResult) -> str:
    """One ``level:path:message`` line per finding (first message line only)."""
    return "\n".join(f"{f.level}:{f.path}:{_first_line(f.message)}" for f in result.findings)
