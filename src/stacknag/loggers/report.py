"""Report sink: per-pack, per-stack compliance reports in CSV and JSON."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from stacknag.engine.rules import NagRuleCompliance, NagRulePostValidationStates, NagRuleStates
from stacknag.errors import NagConfigurationError
from stacknag.loggers.base import NagLoggerSuppressedData, NagLoggerSuppressedErrorData

if TYPE_CHECKING:
    from collections.abc import Iterable

    from stacknag.loggers.base import (
        NagLoggerBaseData,
        NagLoggerComplianceData,
        NagLoggerErrorData,
        NagLoggerNonComplianceData,
        NagLoggerNotApplicableData,
    )

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

CSV_HEADER = "Rule ID,Resource ID,Compliance,Exception Reason,Rule Level,Rule Info\n"
NO_EXCEPTION_REASON = "N/A"
# Resources outside any stack are reported under this name.
APP_STACK_NAME = "App"


class NagReportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


@dataclass(frozen=True)
class NagReportLine:
    """One row of a compliance report."""

    rule_id: str
    resource_id: str
    compliance: str
    exception_reason: str
    rule_level: str
    rule_info: str

    def as_json(self) -> dict[str, str]:
        return {
            "ruleId": self.rule_id,
            "resourceId": self.resource_id,
            "compliance": self.compliance,
            "exceptionReason": self.exception_reason,
            "ruleLevel": self.rule_level,
            "ruleInfo": self.rule_info,
        }

    def as_row(self) -> list[str]:
        return [
            self.rule_id,
            self.resource_id,
            self.compliance,
            self.exception_reason,
            self.rule_level,
            self.rule_info,
        ]


# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------


class NagReportLogger:
    """Collect one report per (pack, stack, format) and write them on demand.

    Every callback opens the report for the resource's stack, so a stack
    whose resources were all not applicable still gets a header-only report.
    """

    def __init__(self, formats: Iterable[NagReportFormat | str]) -> None:
        self.formats: tuple[NagReportFormat, ...] = tuple(NagReportFormat(f) for f in formats)
        if not self.formats:
            msg = "Must provide at least 1 NagReportFormat."
            raise NagConfigurationError(msg)
        self._reports: dict[NagReportFormat, dict[str, list[NagReportLine]]] = {
            fmt: {} for fmt in self.formats
        }

    # -- callbacks ----------------------------------------------------------

    def on_compliance(self, data: NagLoggerComplianceData) -> None:
        self._initialize_stack_report(data)
        self._write_line(data, NagRuleCompliance.COMPLIANT)

    def on_non_compliance(self, data: NagLoggerNonComplianceData) -> None:
        self._initialize_stack_report(data)
        self._write_line(data, NagRuleCompliance.NON_COMPLIANT)

    def on_suppressed(self, data: NagLoggerSuppressedData) -> None:
        self._initialize_stack_report(data)
        self._write_line(data, NagRulePostValidationStates.SUPPRESSED)

    def on_error(self, data: NagLoggerErrorData) -> None:
        self._initialize_stack_report(data)
        self._write_line(data, NagRulePostValidationStates.UNKNOWN)

    def on_suppressed_error(self, data: NagLoggerSuppressedErrorData) -> None:
        self._initialize_stack_report(data)
        self._write_line(data, NagRulePostValidationStates.SUPPRESSED)

    def on_not_applicable(self, data: NagLoggerNotApplicableData) -> None:
        self._initialize_stack_report(data)

    # -- access -------------------------------------------------------------

    def reset(self) -> None:
        for reports in self._reports.values():
            reports.clear()

    def read_report_stacks(self, fmt: NagReportFormat | str = NagReportFormat.CSV) -> list[str]:
        """Report file names opened so far for *fmt*, in first-seen order."""
        return list(self._reports.get(NagReportFormat(fmt), {}))

    def report_lines(self, file_name: str) -> list[NagReportLine]:
        for reports in self._reports.values():
            if file_name in reports:
                return list(reports[file_name])
        msg = f"No report named '{file_name}'"
        raise KeyError(msg)

    def render(self, file_name: str) -> str:
        """Render the named report exactly as it would be written to disk."""
        fmt = _format_of(file_name)
        lines = self._reports[fmt][file_name]
        if fmt is NagReportFormat.JSON:
            return json.dumps({"lines": [line.as_json() for line in lines]})
        buffer = io.StringIO()
        buffer.write(CSV_HEADER)
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerows(line.as_row() for line in lines)
        return buffer.getvalue()

    def write(self, output_dir: Path | str) -> list[Path]:
        """Write every report into *output_dir*, returning the written paths."""
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []
        for reports in self._reports.values():
            for file_name in reports:
                path = out / file_name
                path.write_text(self.render(file_name), encoding="utf-8")
                logger.info("Wrote report %s", path)
                written.append(path)
        return written

    # -- internals ----------------------------------------------------------

    def _file_name(self, data: NagLoggerBaseData, fmt: NagReportFormat) -> str:
        stack = data.resource.stack
        if stack is None:
            stack_name = APP_STACK_NAME
        elif stack.nested:
            stack_name = stack.unique_id
        else:
            stack_name = stack.stack_name
        return f"{data.nag_pack_name}-{stack_name}-NagReport.{fmt.value}"

    def _initialize_stack_report(self, data: NagLoggerBaseData) -> None:
        for fmt in self.formats:
            self._reports[fmt].setdefault(self._file_name(data, fmt), [])

    def _write_line(self, data: NagLoggerBaseData, compliance: NagRuleStates) -> None:
        exception_reason = NO_EXCEPTION_REASON
        if compliance is NagRulePostValidationStates.SUPPRESSED:
            if isinstance(data, NagLoggerSuppressedData):
                exception_reason = data.suppression_reason
            elif isinstance(data, NagLoggerSuppressedErrorData):
                exception_reason = data.error_suppression_reason
        line = NagReportLine(
            rule_id=data.rule_id,
            resource_id=data.resource.path,
            compliance=compliance.value,
            exception_reason=exception_reason,
            rule_level=data.rule_level.value,
            rule_info=data.rule_info,
        )
        for fmt in self.formats:
            self._reports[fmt][self._file_name(data, fmt)].append(line)


def _format_of(file_name: str) -> NagReportFormat:
    return NagReportFormat(file_name.rsplit(".", 1)[-1])
