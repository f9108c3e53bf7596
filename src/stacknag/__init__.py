"""stacknag: rule-pack compliance checks for infrastructure resource trees."""

from stacknag.engine.pack import NagPack
from stacknag.engine.rules import (
    NagMessageLevel,
    NagRule,
    NagRuleCompliance,
    NagRulePostValidationStates,
)
from stacknag.errors import (
    NagConfigurationError,
    SuppressionPathError,
    TemplateError,
    UnknownMessageLevelError,
)
from stacknag.loggers.report import NagReportFormat
from stacknag.suppression.conditions import (
    SuppressionIgnoreAlways,
    SuppressionIgnoreAnd,
    SuppressionIgnoreErrors,
    SuppressionIgnoreNever,
    SuppressionIgnoreOr,
)
from stacknag.suppression.store import NagPackSuppression, RegexAppliesTo, SuppressionStore
from stacknag.tree.constructs import App, CfnResource, Construct, Stack

__version__ = "0.3.0"

__all__ = [
    "App",
    "CfnResource",
    "Construct",
    "NagConfigurationError",
    "NagMessageLevel",
    "NagPack",
    "NagPackSuppression",
    "NagReportFormat",
    "NagRule",
    "NagRuleCompliance",
    "NagRulePostValidationStates",
    "RegexAppliesTo",
    "Stack",
    "SuppressionIgnoreAlways",
    "SuppressionIgnoreAnd",
    "SuppressionIgnoreErrors",
    "SuppressionIgnoreNever",
    "SuppressionIgnoreOr",
    "SuppressionPathError",
    "SuppressionStore",
    "TemplateError",
    "UnknownMessageLevelError",
    "__version__",
]
