"""Rule pack: evaluate registered rules against every resource and dispatch outcomes."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from stacknag.engine.rules import (
    VALIDATION_FAILURE_ID,
    NagMessageLevel,
    NagRule,
    NagRuleCompliance,
)
from stacknag.errors import NagConfigurationError
from stacknag.loggers.annotation import AnnotationLogger
from stacknag.loggers.base import (
    NagLoggerComplianceData,
    NagLoggerErrorData,
    NagLoggerNonComplianceData,
    NagLoggerNotApplicableData,
    NagLoggerSuppressedData,
    NagLoggerSuppressedErrorData,
)
from stacknag.loggers.report import NagReportFormat, NagReportLogger
from stacknag.suppression.conditions import SuppressionIgnoreInput, SuppressionIgnoreNever
from stacknag.suppression.store import SuppressionStore, does_apply
from stacknag.tree.constructs import CfnResource

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from stacknag.engine.rules import NagRuleResult
    from stacknag.loggers.base import INagLogger
    from stacknag.suppression.conditions import INagSuppressionIgnore
    from stacknag.suppression.store import NagPackSuppression
    from stacknag.tree.constructs import Construct

logger = logging.getLogger(__name__)


class NagPack:
    """A named set of rules applied to every resource of a tree.

    Parameters
    ----------
    pack_name:
        Prefix of every rule id (``<pack_name>-<rule name>``) and of report
        file names.
    rules:
        Rules evaluated for each resource, in order.
    verbose:
        Include rule explanations in annotation messages.
    log_ignores:
        Emit info annotations for honoured suppressions.
    reports:
        Attach a :class:`NagReportLogger` writing ``report_formats``.
    additional_loggers:
        Extra sinks receiving every outcome after the built-in ones.
    suppression_ignore_condition:
        Decides when a matching suppression is overridden.  Defaults to
        never overriding.
    suppressions:
        Store consulted for resource and stack suppressions.
    """

    def __init__(
        self,
        pack_name: str,
        rules: Iterable[NagRule] = (),
        *,
        verbose: bool = False,
        log_ignores: bool = False,
        reports: bool = True,
        report_formats: Sequence[NagReportFormat | str] = (NagReportFormat.CSV,),
        additional_loggers: Iterable[INagLogger] = (),
        suppression_ignore_condition: INagSuppressionIgnore | None = None,
        suppressions: SuppressionStore | None = None,
    ) -> None:
        if not pack_name or not pack_name.strip():
            msg = "A NagPack must have a non-empty pack_name"
            raise NagConfigurationError(msg)
        self.pack_name = pack_name
        self.rules: list[NagRule] = []
        self.suppression_ignore_condition = suppression_ignore_condition or SuppressionIgnoreNever()
        self.suppressions = suppressions if suppressions is not None else SuppressionStore()

        self.report_logger: NagReportLogger | None = None
        self.loggers: list[INagLogger] = [
            AnnotationLogger(verbose=verbose, log_ignores=log_ignores)
        ]
        if reports:
            self.report_logger = NagReportLogger(report_formats)
            self.loggers.append(self.report_logger)
        self.loggers.extend(additional_loggers)

        for rule in rules:
            self.add_rule(rule)

    def __repr__(self) -> str:
        return f"NagPack(pack_name={self.pack_name!r}, rules={len(self.rules)})"

    # -- registration -------------------------------------------------------

    def add_rule(self, rule: NagRule) -> None:
        rule_id = self.rule_id(rule)
        if any(self.rule_id(r) == rule_id for r in self.rules):
            msg = f"Rule '{rule_id}' is already registered in pack '{self.pack_name}'"
            raise NagConfigurationError(msg)
        self.rules.append(rule)

    def rule_id(self, rule: NagRule) -> str:
        return f"{self.pack_name}-{rule.name}"

    # -- traversal ----------------------------------------------------------

    def check(self, root: Construct) -> int:
        """Visit every construct under *root* depth-first; return resources visited."""
        visited = 0
        for node in root.find_all():
            if isinstance(node, CfnResource):
                visited += 1
            self.visit(node)
        return visited

    def visit(self, node: Construct) -> None:
        """Apply every rule to *node* if it is a resource."""
        if not isinstance(node, CfnResource):
            return
        for rule in self.rules:
            self.apply_rule(rule, node)

    # -- evaluation ---------------------------------------------------------

    def apply_rule(self, rule: NagRule, resource: CfnResource) -> None:
        """Evaluate *rule* against *resource* and send one outcome per finding."""
        rule_id = self.rule_id(rule)
        base = {
            "nag_pack_name": self.pack_name,
            "resource": resource,
            "rule_id": rule_id,
            "rule_original_name": rule.name,
            "rule_info": rule.info,
            "rule_explanation": rule.explanation,
            "rule_level": rule.level,
        }
        if not rule.applies_to_type(resource.resource_type):
            self._dispatch("on_not_applicable", NagLoggerNotApplicableData(**base))
            return

        suppressions = self.suppressions.get_suppressions(resource)
        try:
            findings = self._findings(rule, resource)
        except Exception as error:  # noqa: BLE001
            logger.debug("Rule %s failed on %s: %s", rule_id, resource.path, error)
            reason, _ = self._ignore_rule(
                suppressions, VALIDATION_FAILURE_ID, rule_id, resource, rule.level
            )
            if reason:
                self._dispatch(
                    "on_suppressed_error",
                    NagLoggerSuppressedErrorData(
                        **base, error_message=str(error), error_suppression_reason=reason
                    ),
                )
            else:
                self._dispatch("on_error", NagLoggerErrorData(**base, error_message=str(error)))
            return

        if findings is NagRuleCompliance.NOT_APPLICABLE:
            self._dispatch("on_not_applicable", NagLoggerNotApplicableData(**base))
            return
        if findings is NagRuleCompliance.COMPLIANT:
            self._dispatch("on_compliance", NagLoggerComplianceData(**base))
            return

        for finding_id in findings:
            reason, overrides = self._ignore_rule(
                suppressions, rule_id, finding_id, resource, rule.level
            )
            if reason:
                self._dispatch(
                    "on_suppressed",
                    NagLoggerSuppressedData(
                        **base, finding_id=finding_id, suppression_reason=reason
                    ),
                )
            else:
                self._dispatch(
                    "on_non_compliance",
                    NagLoggerNonComplianceData(
                        **base,
                        finding_id=finding_id,
                        suppression_ignore_messages=tuple(overrides),
                    ),
                )

    def _findings(
        self, rule: NagRule, resource: CfnResource
    ) -> NagRuleCompliance | list[str]:
        """Run the predicate and normalize its result.

        Returns ``COMPLIANT``, ``NOT_APPLICABLE``, or the list of finding ids
        (``[""]`` for a plain non-compliance).  Raises ``TypeError`` for any
        result the evaluator cannot interpret.
        """
        result: NagRuleResult = rule.predicate(resource)
        if isinstance(result, NagRuleCompliance):
            if result is NagRuleCompliance.NON_COMPLIANT:
                return [""]
            return result
        if isinstance(result, list) and all(isinstance(f, str) for f in result):
            return list(result) if result else NagRuleCompliance.COMPLIANT
        msg = (
            f"Rule {self.rule_id(rule)} returned an unsupported result {result!r}; "
            "expected a NagRuleCompliance or a list of finding strings"
        )
        raise TypeError(msg)

    def _ignore_rule(
        self,
        suppressions: Sequence[NagPackSuppression],
        rule_id: str,
        finding_id: str,
        resource: CfnResource,
        level: NagMessageLevel,
    ) -> tuple[str, list[str]]:
        """Return the reason of the first honoured suppression and any override messages.

        The reason is empty when no suppression applies or every applicable
        one was overridden by the ignore condition.
        """
        overrides: list[str] = []
        for suppression in suppressions:
            if not does_apply(suppression, rule_id, finding_id):
                continue
            message = self.suppression_ignore_condition.create_message(
                SuppressionIgnoreInput(
                    resource=resource,
                    reason=suppression.reason,
                    rule_id=rule_id,
                    finding_id=finding_id,
                    rule_level=level,
                )
            )
            if message:
                logger.debug(
                    "Ignored suppression of %s on %s: %s", rule_id, resource.path, message
                )
                overrides.append(message)
                continue
            return suppression.reason, overrides
        return "", overrides

    def _dispatch(self, callback: str, data: object) -> None:
        for sink in self.loggers:
            getattr(sink, callback)(data)

    # -- reports ------------------------------------------------------------

    def reset_reports(self) -> None:
        """Drop report lines buffered by an earlier check."""
        if self.report_logger is not None:
            self.report_logger.reset()

    def read_report_stacks(self, fmt: NagReportFormat | str = NagReportFormat.CSV) -> list[str]:
        if self.report_logger is None:
            return []
        return self.report_logger.read_report_stacks(fmt)

    def write_reports(self, output_dir: Path | str) -> list[Path]:
        """Write this pack's reports into *output_dir*; no-op without a report logger."""
        if self.report_logger is None:
            return []
        return self.report_logger.write(output_dir)
