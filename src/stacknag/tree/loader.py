"""Template loader: build a resource tree from a YAML or JSON document.

Two document shapes are accepted:

* an app document ``{stacks: {Name: {Resources, NestedStacks, Metadata}}}``
* a bare CloudFormation template with top-level ``Resources``, loaded as a
  single stack named after the file stem

Suppressions declared in resource or stack metadata under
``nag: {rules_to_suppress: [...]}`` are imported into a
:class:`~stacknag.suppression.store.SuppressionStore`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from stacknag.errors import NagConfigurationError, TemplateError
from stacknag.suppression.store import NagPackSuppression, SuppressionStore
from stacknag.tree.constructs import App, CfnResource, Stack

logger = logging.getLogger(__name__)

METADATA_KEY = "nag"
RULES_TO_SUPPRESS_KEY = "rules_to_suppress"
DEFAULT_STACK_NAME = "Stack"

# ---------------------------------------------------------------------------
# YAML intrinsic tags
# ---------------------------------------------------------------------------


class _TemplateLoader(yaml.SafeLoader):
    """SafeLoader that understands CloudFormation short-form tags (``!Ref``, ``!Sub``...)."""


def _construct_intrinsic(loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node) -> Any:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)  # type: ignore[arg-type]

    if tag_suffix == "Ref":
        return {"Ref": value}
    if tag_suffix == "GetAtt" and isinstance(value, str):
        resource, _, attribute = value.partition(".")
        return {"Fn::GetAtt": [resource, attribute]}
    return {f"Fn::{tag_suffix}": value}


_TemplateLoader.add_multi_constructor("!", _construct_intrinsic)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_template(path: Path | str) -> tuple[App, SuppressionStore]:
    """Read a YAML or JSON template file and build its resource tree.

    Raises
    ------
    TemplateError
        When the file is missing, cannot be parsed, or has an invalid shape.
    """
    template_path = Path(path)
    try:
        text = template_path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read template {template_path}: {exc}"
        raise TemplateError(msg) from exc

    try:
        if template_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.load(text, Loader=_TemplateLoader)  # noqa: S506
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        msg = f"Cannot parse template {template_path}: {exc}"
        raise TemplateError(msg) from exc

    return load_app(data, default_stack_name=template_path.stem or DEFAULT_STACK_NAME)


def load_app(
    data: Any,
    *,
    default_stack_name: str = DEFAULT_STACK_NAME,
) -> tuple[App, SuppressionStore]:
    """Build a resource tree from an already parsed document."""
    if not isinstance(data, Mapping):
        msg = "Template must be a mapping"
        raise TemplateError(msg)

    app = App()
    store = SuppressionStore()
    if "stacks" in data:
        stacks = data["stacks"]
        if not isinstance(stacks, Mapping):
            msg = "'stacks' must be a mapping of stack name to template"
            raise TemplateError(msg)
        for name, body in stacks.items():
            _build_stack(app, str(name), body, store)
    elif "Resources" in data:
        _build_stack(app, default_stack_name, data, store)
    else:
        msg = "Template has neither 'stacks' nor 'Resources'"
        raise TemplateError(msg)

    logger.debug("Loaded %d construct(s) from template", len(app.find_all()) - 1)
    return app, store


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _build_stack(scope: App | Stack, name: str, body: Any, store: SuppressionStore) -> Stack:
    if body is None:
        body = {}
    if not isinstance(body, Mapping):
        msg = f"Stack '{name}' must be a mapping"
        raise TemplateError(msg)

    stack_name = body.get("StackName")
    metadata = body.get("Metadata") or {}
    try:
        stack = Stack(
            scope,
            name,
            stack_name=str(stack_name) if stack_name else None,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else None,
        )
    except ValueError as exc:
        raise TemplateError(str(exc)) from exc

    resources = body.get("Resources") or {}
    if not isinstance(resources, Mapping):
        msg = f"Stack '{name}': 'Resources' must be a mapping"
        raise TemplateError(msg)
    for logical_id, resource in resources.items():
        _build_resource(stack, str(logical_id), resource, store)

    nested = body.get("NestedStacks") or {}
    if not isinstance(nested, Mapping):
        msg = f"Stack '{name}': 'NestedStacks' must be a mapping"
        raise TemplateError(msg)
    for nested_name, nested_body in nested.items():
        _build_stack(stack, str(nested_name), nested_body, store)

    suppressions = _metadata_suppressions(stack.metadata, stack.path)
    if suppressions:
        store.add_stack_suppressions(stack, suppressions)
    return stack


def _build_resource(stack: Stack, logical_id: str, body: Any, store: SuppressionStore) -> None:
    if not isinstance(body, Mapping):
        msg = f"{stack.path}/{logical_id}: resource must be a mapping"
        raise TemplateError(msg)
    resource_type = body.get("Type")
    if not isinstance(resource_type, str) or not resource_type:
        msg = f"{stack.path}/{logical_id}: resource is missing 'Type'"
        raise TemplateError(msg)
    properties = body.get("Properties") or {}
    metadata = body.get("Metadata") or {}
    if not isinstance(properties, Mapping) or not isinstance(metadata, Mapping):
        msg = f"{stack.path}/{logical_id}: 'Properties' and 'Metadata' must be mappings"
        raise TemplateError(msg)

    try:
        resource = CfnResource(
            stack,
            logical_id,
            type=resource_type,
            properties=dict(properties),
            metadata=dict(metadata),
        )
    except ValueError as exc:
        raise TemplateError(str(exc)) from exc

    suppressions = _metadata_suppressions(resource.metadata, resource.path)
    if suppressions:
        store.add_resource_suppressions(resource, suppressions)


def _metadata_suppressions(metadata: Mapping[str, Any], where: str) -> list[NagPackSuppression]:
    section = metadata.get(METADATA_KEY)
    if section is None:
        return []
    if not isinstance(section, Mapping):
        msg = f"{where}: '{METADATA_KEY}' metadata must be a mapping"
        raise TemplateError(msg)
    entries = section.get(RULES_TO_SUPPRESS_KEY) or []
    if not isinstance(entries, list):
        msg = f"{where}: '{RULES_TO_SUPPRESS_KEY}' must be a list"
        raise TemplateError(msg)

    suppressions: list[NagPackSuppression] = []
    for entry in entries:
        if not isinstance(entry, Mapping):
            msg = f"{where}: every '{RULES_TO_SUPPRESS_KEY}' entry must be a mapping"
            raise TemplateError(msg)
        try:
            suppressions.append(NagPackSuppression.from_dict(entry))
        except NagConfigurationError as exc:
            msg = f"{where}: {exc}"
            raise TemplateError(msg) from exc
    return suppressions
