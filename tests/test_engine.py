"""Tests for stacknag.engine.pack: rule evaluation, suppression handling, error containment."""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING, Any

import pytest

from stacknag.engine.pack import NagPack
from stacknag.engine.rules import (
    VALIDATION_FAILURE_ID,
    NagMessageLevel,
    NagRule,
    NagRuleCompliance,
)
from stacknag.errors import NagConfigurationError
from stacknag.loggers.base import INagLogger
from stacknag.suppression.conditions import (
    SuppressionIgnoreAlways,
    SuppressionIgnoreAnd,
    SuppressionIgnoreErrors,
    SuppressionIgnoreNever,
    SuppressionIgnoreOr,
)
from stacknag.suppression.store import NagPackSuppression, SuppressionStore
from stacknag.tree.constructs import App, CfnResource, Stack

if TYPE_CHECKING:
    from stacknag.suppression.conditions import INagSuppressionIgnore

REASON = "Reviewed and accepted by the platform team."


class RecordingLogger:
    """Sink that records ``(callback, data)`` pairs."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def _record(self, name: str, data: Any) -> None:
        self.events.append((name, data))

    def on_compliance(self, data: Any) -> None:
        self._record("compliance", data)

    def on_non_compliance(self, data: Any) -> None:
        self._record("non_compliance", data)

    def on_suppressed(self, data: Any) -> None:
        self._record("suppressed", data)

    def on_error(self, data: Any) -> None:
        self._record("error", data)

    def on_suppressed_error(self, data: Any) -> None:
        self._record("suppressed_error", data)

    def on_not_applicable(self, data: Any) -> None:
        self._record("not_applicable", data)

    def kinds(self) -> list[str]:
        return [name for name, _ in self.events]


def _pack(
    rules: list[NagRule],
    store: SuppressionStore | None = None,
    condition: INagSuppressionIgnore | None = None,
    **kwargs: Any,
) -> tuple[NagPack, RecordingLogger]:
    recorder = RecordingLogger()
    pack = NagPack(
        "Demo",
        rules,
        additional_loggers=[recorder],
        suppression_ignore_condition=condition,
        suppressions=store,
        **kwargs,
    )
    return pack, recorder


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestNagPackConstruction:
    def test_pack_requires_name(self) -> None:
        with pytest.raises(NagConfigurationError):
            NagPack("")

    def test_rule_id_is_pack_qualified(self, bucket_rule: NagRule) -> None:
        pack = NagPack("Demo", [bucket_rule])
        assert pack.rule_id(bucket_rule) == "Demo-S1"

    def test_rule_id_defaults_to_predicate_name(self) -> None:
        def S9(resource: CfnResource) -> NagRuleCompliance:  # noqa: N802, ARG001
            return NagRuleCompliance.COMPLIANT

        rule = NagRule(S9, "info", "explanation")
        assert NagPack("Demo", [rule]).rule_id(rule) == "Demo-S9"

    def test_duplicate_rule_rejected(self, bucket_rule: NagRule) -> None:
        with pytest.raises(NagConfigurationError, match="already registered"):
            NagPack("Demo", [bucket_rule, bucket_rule])

    def test_recording_logger_satisfies_protocol(self) -> None:
        assert isinstance(RecordingLogger(), INagLogger)

    def test_info_level_rule_rejected(self) -> None:
        with pytest.raises(ValueError, match="invalid level"):
            NagRule(lambda r: NagRuleCompliance.COMPLIANT, "i", "e", level=NagMessageLevel.INFO)

    def test_string_level_coerced(self) -> None:
        rule = NagRule(lambda r: NagRuleCompliance.COMPLIANT, "i", "e", level="Warning")  # type: ignore[arg-type]
        assert rule.level is NagMessageLevel.WARN


# ---------------------------------------------------------------------------
# Result shapes
# ---------------------------------------------------------------------------


class TestResultShapes:
    def test_not_applicable(self, bucket: CfnResource, policy_rule: NagRule) -> None:
        pack, recorder = _pack([policy_rule])
        pack.apply_rule(policy_rule, bucket)
        assert recorder.kinds() == ["not_applicable"]

    def test_compliant(self, bucket: CfnResource, bucket_rule: NagRule) -> None:
        bucket.properties["LoggingConfiguration"] = {"DestinationBucketName": "logs"}
        pack, recorder = _pack([bucket_rule])
        pack.apply_rule(bucket_rule, bucket)
        assert recorder.kinds() == ["compliance"]

    def test_empty_finding_list_is_compliant(self, bucket: CfnResource) -> None:
        rule = NagRule(lambda r: [], "i", "e", suffix="Empty")
        pack, recorder = _pack([rule])
        pack.apply_rule(rule, bucket)
        assert recorder.kinds() == ["compliance"]

    def test_scalar_non_compliance_has_no_finding_id(
        self, bucket: CfnResource, bucket_rule: NagRule
    ) -> None:
        pack, recorder = _pack([bucket_rule])
        pack.apply_rule(bucket_rule, bucket)
        ((kind, data),) = recorder.events
        assert kind == "non_compliance"
        assert data.finding_id == ""
        assert data.rule_id == "Demo-S1"
        assert data.rule_original_name == "S1"

    def test_one_outcome_per_finding(self, policy: CfnResource, policy_rule: NagRule) -> None:
        pack, recorder = _pack([policy_rule])
        pack.apply_rule(policy_rule, policy)
        assert [d.finding_id for _, d in recorder.events] == ["Action::s3:*", "Resource::*"]

    def test_unsupported_result_is_validation_failure(self, bucket: CfnResource) -> None:
        rule = NagRule(lambda r: True, "i", "e", suffix="Bool")  # type: ignore[arg-type, return-value]
        pack, recorder = _pack([rule])
        pack.apply_rule(rule, bucket)
        ((kind, data),) = recorder.events
        assert kind == "error"
        assert "unsupported result" in data.error_message

    def test_resource_type_filter_skips_predicate(self, policy: CfnResource) -> None:
        calls: list[str] = []

        def tracked(resource: CfnResource) -> NagRuleCompliance:
            calls.append(resource.path)
            return NagRuleCompliance.NON_COMPLIANT

        rule = NagRule(tracked, "i", "e", suffix="Typed", resource_types={"AWS::S3::Bucket"})
        pack, recorder = _pack([rule])
        pack.apply_rule(rule, policy)
        assert calls == []
        assert recorder.kinds() == ["not_applicable"]


# ---------------------------------------------------------------------------
# Suppressions
# ---------------------------------------------------------------------------


class TestSuppressions:
    def test_fine_grained_containment(self, policy: CfnResource, policy_rule: NagRule) -> None:
        """A finding-level suppression leaves the other findings non-compliant."""
        store = SuppressionStore()
        store.add_resource_suppressions(
            policy, [NagPackSuppression("Demo-IAM5", REASON, applies_to=("Action::s3:*",))]
        )
        pack, recorder = _pack([policy_rule], store)
        pack.apply_rule(policy_rule, policy)
        outcomes = [(kind, data.finding_id) for kind, data in recorder.events]
        assert outcomes == [("suppressed", "Action::s3:*"), ("non_compliance", "Resource::*")]

    def test_coarse_suppression_covers_all_findings(
        self, policy: CfnResource, policy_rule: NagRule
    ) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(policy, [NagPackSuppression("Demo-IAM5", REASON)])
        pack, recorder = _pack([policy_rule], store)
        pack.apply_rule(policy_rule, policy)
        assert recorder.kinds() == ["suppressed", "suppressed"]
        assert all(d.suppression_reason == REASON for _, d in recorder.events)

    def test_regex_applies_to(self, policy: CfnResource, policy_rule: NagRule) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(
            policy,
            [
                NagPackSuppression.from_dict(
                    {"id": "Demo-IAM5", "reason": REASON, "applies_to": [{"regex": "/^Resource::/"}]}
                )
            ],
        )
        pack, recorder = _pack([policy_rule], store)
        pack.apply_rule(policy_rule, policy)
        assert recorder.kinds() == ["non_compliance", "suppressed"]

    def test_stack_suppression_applies(self, app: App, bucket: CfnResource, bucket_rule: NagRule) -> None:
        store = SuppressionStore()
        stack = app.find_child("Stack1")
        assert isinstance(stack, Stack)
        store.add_stack_suppressions(stack, [NagPackSuppression("Demo-S1", REASON)])
        pack, recorder = _pack([bucket_rule], store)
        pack.apply_rule(bucket_rule, bucket)
        assert recorder.kinds() == ["suppressed"]

    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            (SuppressionIgnoreNever(), "suppressed"),
            (SuppressionIgnoreAnd(SuppressionIgnoreAlways("no"), SuppressionIgnoreNever()), "suppressed"),
            (SuppressionIgnoreAlways("no"), "non_compliance"),
            (SuppressionIgnoreOr(SuppressionIgnoreAlways("no"), SuppressionIgnoreNever()), "non_compliance"),
        ],
    )
    def test_override_precedence(
        self,
        bucket: CfnResource,
        bucket_rule: NagRule,
        condition: INagSuppressionIgnore,
        expected: str,
    ) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(bucket, [NagPackSuppression("Demo-S1", REASON)])
        pack, recorder = _pack([bucket_rule], store, condition)
        pack.apply_rule(bucket_rule, bucket)
        assert recorder.kinds() == [expected]

    def test_override_message_is_carried(self, bucket: CfnResource, bucket_rule: NagRule) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(bucket, [NagPackSuppression("Demo-S1", REASON)])
        pack, recorder = _pack([bucket_rule], store, SuppressionIgnoreErrors())
        pack.apply_rule(bucket_rule, bucket)
        ((kind, data),) = recorder.events
        assert kind == "non_compliance"
        assert len(data.suppression_ignore_messages) == 1
        assert "may not be suppressed" in data.suppression_ignore_messages[0]
        assert any(
            "was ignored for the following reason(s)" in a.message for a in bucket.annotations
        )


# ---------------------------------------------------------------------------
# Validation failures
# ---------------------------------------------------------------------------


class TestValidationFailures:
    def test_error_is_contained(self, app: App, boom_rule: NagRule, bucket_rule: NagRule) -> None:
        """A throwing rule yields one failure per resource and evaluation continues."""
        pack, recorder = _pack([boom_rule, bucket_rule])
        pack.check(app)
        kinds = recorder.kinds()
        assert kinds.count("error") == 2
        assert kinds.count("non_compliance") == 1
        assert kinds.count("not_applicable") == 1

    def test_error_message_in_verbose_annotation(
        self, bucket: CfnResource, boom_rule: NagRule
    ) -> None:
        pack, _ = _pack([boom_rule], verbose=True)
        pack.apply_rule(boom_rule, bucket)
        (annotation,) = bucket.annotations
        assert annotation.level == "warning"
        assert annotation.message.startswith(f"{VALIDATION_FAILURE_ID}[Demo-Boom]:")
        assert "boom" in annotation.message

    def test_suppressed_by_validation_failure_id(
        self, bucket: CfnResource, boom_rule: NagRule
    ) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(
            bucket, [NagPackSuppression(VALIDATION_FAILURE_ID, REASON, applies_to=("Demo-Boom",))]
        )
        pack, recorder = _pack([boom_rule], store)
        pack.apply_rule(boom_rule, bucket)
        ((kind, data),) = recorder.events
        assert kind == "suppressed_error"
        assert data.error_message == "boom"
        assert data.error_suppression_reason == REASON

    def test_suppressed_by_originating_rule_id(
        self, bucket: CfnResource, boom_rule: NagRule
    ) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(bucket, [NagPackSuppression("Demo-Boom", REASON)])
        pack, recorder = _pack([boom_rule], store)
        pack.apply_rule(boom_rule, bucket)
        assert recorder.kinds() == ["suppressed_error"]

    def test_packs_suppress_failures_independently(
        self, bucket: CfnResource, boom_rule: NagRule
    ) -> None:
        """One pack's suppression does not affect another pack's outcome."""
        store = SuppressionStore()
        store.add_resource_suppressions(bucket, [NagPackSuppression("First-Boom", REASON)])
        first_recorder = RecordingLogger()
        second_recorder = RecordingLogger()
        first = NagPack("First", [boom_rule], additional_loggers=[first_recorder], suppressions=store)
        second = NagPack(
            "Second", [boom_rule], additional_loggers=[second_recorder], suppressions=store
        )
        first.apply_rule(boom_rule, bucket)
        second.apply_rule(boom_rule, bucket)
        assert first_recorder.kinds() == ["suppressed_error"]
        assert second_recorder.kinds() == ["error"]


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestEndToEnd:
    def test_unsuppressed_non_compliance(self, bucket: CfnResource, bucket_rule: NagRule) -> None:
        pack, recorder = _pack([bucket_rule])
        pack.apply_rule(bucket_rule, bucket)
        assert recorder.kinds() == ["non_compliance"]
        (annotation,) = bucket.annotations
        assert annotation.level == "error"
        assert annotation.message == "Demo-S1: The S3 Bucket has server access logs disabled.\n"

    @pytest.mark.parametrize("log_ignores", [False, True])
    def test_suppressed_non_compliance(
        self, bucket: CfnResource, bucket_rule: NagRule, log_ignores: bool
    ) -> None:
        store = SuppressionStore()
        store.add_resource_suppressions(bucket, [NagPackSuppression("Demo-S1", REASON)])
        pack, recorder = _pack([bucket_rule], store, log_ignores=log_ignores, verbose=True)
        pack.apply_rule(bucket_rule, bucket)
        assert recorder.kinds() == ["suppressed"]
        if log_ignores:
            (annotation,) = bucket.annotations
            assert annotation.level == "info"
            assert REASON in annotation.message
        else:
            assert bucket.annotations == []

    def test_check_walks_nested_stacks(self, bucket_rule: NagRule) -> None:
        app = App()
        outer = Stack(app, "Outer")
        CfnResource(outer, "A", type="AWS::S3::Bucket")
        inner = Stack(outer, "Inner")
        CfnResource(inner, "B", type="AWS::S3::Bucket")
        pack, recorder = _pack([bucket_rule])
        assert pack.check(app) == 2
        assert [d.resource.path for _, d in recorder.events] == ["Outer/A", "Outer/Inner/B"]

    def test_csv_report_rows(self, app: App, bucket: CfnResource, bucket_rule: NagRule, policy_rule: NagRule) -> None:
        """Compliant and suppressed rows, with quotes escaped RFC 4180 style."""
        quoted_reason = 'Wildcards are "fine" for this sandbox.'
        store = SuppressionStore()
        policy = app.find_child("Stack1").find_child("Policy")  # type: ignore[union-attr]
        assert isinstance(policy, CfnResource)
        store.add_resource_suppressions(policy, [NagPackSuppression("Demo-IAM5", quoted_reason)])
        bucket.properties["LoggingConfiguration"] = {"DestinationBucketName": "logs"}
        pack = NagPack("Demo", [bucket_rule, policy_rule], suppressions=store)
        pack.check(app)

        (file_name,) = pack.read_report_stacks()
        assert file_name == "Demo-Stack1-NagReport.csv"
        assert pack.report_logger is not None
        rows = list(csv.reader(io.StringIO(pack.report_logger.render(file_name))))
        assert rows[0] == [
            "Rule ID",
            "Resource ID",
            "Compliance",
            "Exception Reason",
            "Rule Level",
            "Rule Info",
        ]
        assert rows[1] == [
            "Demo-S1",
            "Stack1/Bucket",
            "Compliant",
            "N/A",
            "Error",
            "The S3 Bucket has server access logs disabled.",
        ]
        assert rows[2][2:4] == ["Suppressed", quoted_reason]
        assert len(rows) == 4
