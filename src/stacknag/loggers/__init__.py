"""Output sinks for rule outcomes."""

from stacknag.loggers.annotation import AnnotationLogger
from stacknag.loggers.base import (
    INagLogger,
    NagLoggerBaseData,
    NagLoggerComplianceData,
    NagLoggerErrorData,
    NagLoggerNonComplianceData,
    NagLoggerNotApplicableData,
    NagLoggerSuppressedData,
    NagLoggerSuppressedErrorData,
)
from stacknag.loggers.report import NagReportFormat, NagReportLine, NagReportLogger

__all__ = [
    "AnnotationLogger",
    "INagLogger",
    "NagLoggerBaseData",
    "NagLoggerComplianceData",
    "NagLoggerErrorData",
    "NagLoggerNonComplianceData",
    "NagLoggerNotApplicableData",
    "NagLoggerSuppressedData",
    "NagLoggerSuppressedErrorData",
    "NagReportFormat",
    "NagReportLine",
    "NagReportLogger",
]
