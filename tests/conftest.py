"""Shared test fixtures for stacknag."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from stacknag.engine.rules import NagMessageLevel, NagRule, NagRuleCompliance
from stacknag.tree.constructs import App, CfnResource, Stack

if TYPE_CHECKING:
    from pathlib import Path


# ---------------------------------------------------------------------------
# Rule predicates
# ---------------------------------------------------------------------------


def bucket_logging(resource: CfnResource) -> NagRuleCompliance:
    if resource.resource_type != "AWS::S3::Bucket":
        return NagRuleCompliance.NOT_APPLICABLE
    if resource.properties.get("LoggingConfiguration"):
        return NagRuleCompliance.COMPLIANT
    return NagRuleCompliance.NON_COMPLIANT


def wildcard_actions(resource: CfnResource) -> NagRuleCompliance | list[str]:
    if resource.resource_type != "AWS::IAM::Policy":
        return NagRuleCompliance.NOT_APPLICABLE
    findings = [f"Action::{a}" for a in resource.properties.get("Actions", []) if "*" in a]
    findings += [f"Resource::{r}" for r in resource.properties.get("Resources", []) if r == "*"]
    return findings or NagRuleCompliance.COMPLIANT


def always_boom(resource: CfnResource) -> NagRuleCompliance:  # noqa: ARG001
    msg = "boom"
    raise RuntimeError(msg)


BUCKET_RULE = NagRule(
    predicate=bucket_logging,
    info="The S3 Bucket has server access logs disabled.",
    explanation="Server access logs help with security and access audits.",
    level=NagMessageLevel.ERROR,
    suffix="S1",
)
POLICY_RULE = NagRule(
    predicate=wildcard_actions,
    info="The IAM policy contains wildcard permissions.",
    explanation="Grant least privilege instead of wildcards.",
    level=NagMessageLevel.ERROR,
    suffix="IAM5",
)
BOOM_RULE = NagRule(
    predicate=always_boom,
    info="This rule always fails to validate.",
    explanation="Used to exercise validation failures.",
    level=NagMessageLevel.WARN,
    suffix="Boom",
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def app() -> App:
    """An app with one stack holding a bucket and a wildcard IAM policy."""
    root = App()
    stack = Stack(root, "Stack1")
    CfnResource(stack, "Bucket", type="AWS::S3::Bucket")
    CfnResource(
        stack,
        "Policy",
        type="AWS::IAM::Policy",
        properties={"Actions": ["s3:*", "s3:GetObject"], "Resources": ["*"]},
    )
    return root


@pytest.fixture()
def bucket(app: App) -> CfnResource:
    resource = app.find_child("Stack1").find_child("Bucket")  # type: ignore[union-attr]
    assert isinstance(resource, CfnResource)
    return resource


@pytest.fixture()
def policy(app: App) -> CfnResource:
    resource = app.find_child("Stack1").find_child("Policy")  # type: ignore[union-attr]
    assert isinstance(resource, CfnResource)
    return resource


@pytest.fixture()
def template_file(tmp_path: Path) -> Path:
    """A YAML app template with a nested stack and a metadata suppression."""
    path = tmp_path / "app.yml"
    path.write_text(
        "stacks:\n"
        "  Stack1:\n"
        "    Resources:\n"
        "      Bucket:\n"
        "        Type: AWS::S3::Bucket\n"
        "      LoggedBucket:\n"
        "        Type: AWS::S3::Bucket\n"
        "        Properties:\n"
        "          LoggingConfiguration:\n"
        "            DestinationBucketName: !Ref Bucket\n"
        "      Policy:\n"
        "        Type: AWS::IAM::Policy\n"
        "        Properties:\n"
        "          Actions: ['s3:*']\n"
        "          Resources: ['arn:aws:s3:::example']\n"
        "        Metadata:\n"
        "          nag:\n"
        "            rules_to_suppress:\n"
        "              - id: Demo-IAM5\n"
        "                reason: Bucket-scoped wildcard is acceptable here.\n"
        "                applies_to: ['Action::s3:*']\n"
        "    NestedStacks:\n"
        "      Inner:\n"
        "        Resources:\n"
        "          InnerBucket:\n"
        "            Type: AWS::S3::Bucket\n",
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def pack_module(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """Write an importable module exposing packs in all supported shapes."""
    module_dir = tmp_path / "packmods"
    module_dir.mkdir()
    (module_dir / "demo_pack.py").write_text(
        "from stacknag.engine.pack import NagPack\n"
        "from stacknag.engine.rules import NagRule, NagRuleCompliance\n"
        "\n"
        "\n"
        "def bucket_logging(resource):\n"
        "    if resource.properties.get('LoggingConfiguration'):\n"
        "        return NagRuleCompliance.COMPLIANT\n"
        "    return NagRuleCompliance.NON_COMPLIANT\n"
        "\n"
        "\n"
        "def wildcard_actions(resource):\n"
        "    return [f'Action::{a}' for a in resource.properties.get('Actions', []) if '*' in a]\n"
        "\n"
        "\n"
        "RULES = [\n"
        "    NagRule(bucket_logging, 'The S3 Bucket has server access logs disabled.',\n"
        "            'Enable access logs.', suffix='S1', resource_types={'AWS::S3::Bucket'}),\n"
        "    NagRule(wildcard_actions, 'The IAM policy contains wildcard permissions.',\n"
        "            'Grant least privilege.', suffix='IAM5',\n"
        "            resource_types={'AWS::IAM::Policy'}),\n"
        "]\n"
        "\n"
        "\n"
        "class DemoPack(NagPack):\n"
        "    def __init__(self, **kwargs):\n"
        "        super().__init__('Demo', RULES, **kwargs)\n"
        "\n"
        "\n"
        "def make_pack(**kwargs):\n"
        "    return DemoPack(**kwargs)\n"
        "\n"
        "\n"
        "INSTANCE = DemoPack(reports=False)\n"
        "NOT_A_PACK = 42\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(module_dir))
    return "demo_pack"


@pytest.fixture()
def bucket_rule() -> NagRule:
    return BUCKET_RULE


@pytest.fixture()
def policy_rule() -> NagRule:
    return POLICY_RULE


@pytest.fixture()
def boom_rule() -> NagRule:
    return BOOM_RULE
