"""Annotation sink: turn rule outcomes into leveled messages on the offending resource."""

from __future__ import annotations

from typing import TYPE_CHECKING

from stacknag.engine.rules import SUPPRESSION_ID, VALIDATION_FAILURE_ID, NagMessageLevel
from stacknag.errors import UnknownMessageLevelError

if TYPE_CHECKING:
    from stacknag.loggers.base import (
        NagLoggerComplianceData,
        NagLoggerErrorData,
        NagLoggerNonComplianceData,
        NagLoggerNotApplicableData,
        NagLoggerSuppressedData,
        NagLoggerSuppressedErrorData,
    )


def create_message(
    rule_id: str,
    finding_id: str,
    rule_info: str,
    rule_explanation: str,
    *,
    verbose: bool,
) -> str:
    """Format ``<rule_id>[<finding_id>]: <info>[ <explanation>]`` with a trailing newline.

    The bracketed finding is omitted when *finding_id* is empty; the
    explanation is only included in verbose mode.
    """
    message = f"{rule_id}[{finding_id}]: {rule_info}" if finding_id else f"{rule_id}: {rule_info}"
    return f"{message} {rule_explanation}\n" if verbose else f"{message}\n"


class AnnotationLogger:
    """Attach error, warning, and info annotations to resources.

    Parameters
    ----------
    verbose:
        Append each rule's explanation to its message.
    log_ignores:
        Emit an info annotation for every suppressed finding and suppressed
        validation failure.
    """

    suppression_id = SUPPRESSION_ID

    def __init__(self, *, verbose: bool = False, log_ignores: bool = False) -> None:
        self.verbose = verbose
        self.log_ignores = log_ignores

    def on_compliance(self, data: NagLoggerComplianceData) -> None:
        return

    def on_not_applicable(self, data: NagLoggerNotApplicableData) -> None:
        return

    def on_non_compliance(self, data: NagLoggerNonComplianceData) -> None:
        message = create_message(
            data.rule_id,
            data.finding_id,
            data.rule_info,
            data.rule_explanation,
            verbose=self.verbose,
        )
        if data.rule_level == NagMessageLevel.ERROR:
            data.resource.add_error(message)
        elif data.rule_level == NagMessageLevel.WARN:
            data.resource.add_warning(message)
        else:
            msg = f"Unrecognized message level '{data.rule_level}' for rule {data.rule_id}"
            raise UnknownMessageLevelError(msg)

        if data.suppression_ignore_messages:
            target = f"{data.rule_id}[{data.finding_id}]" if data.finding_id else data.rule_id
            reasons = "\n\t".join(data.suppression_ignore_messages)
            data.resource.add_info(
                f"The suppression for {target} was ignored for the following reason(s).\n\t{reasons}"
            )

    def on_suppressed(self, data: NagLoggerSuppressedData) -> None:
        if not self.log_ignores:
            return
        message = create_message(
            self.suppression_id,
            data.finding_id,
            f"{data.rule_id} was triggered but suppressed.",
            f'Provided reason: "{data.suppression_reason}"',
            verbose=self.verbose,
        )
        data.resource.add_info(message)

    def on_error(self, data: NagLoggerErrorData) -> None:
        information = (
            f"'{data.rule_id}' threw an error during validation. This is generally caused "
            "by a parameter referencing an intrinsic function. You can suppress the "
            f'"{VALIDATION_FAILURE_ID}" to get rid of this error. For more details enable '
            "verbose logging."
        )
        message = create_message(
            VALIDATION_FAILURE_ID,
            data.rule_id,
            information,
            data.error_message,
            verbose=self.verbose,
        )
        data.resource.add_warning(message)

    def on_suppressed_error(self, data: NagLoggerSuppressedErrorData) -> None:
        if not self.log_ignores:
            return
        message = create_message(
            self.suppression_id,
            data.rule_id,
            f"{VALIDATION_FAILURE_ID} was triggered but suppressed.",
            data.error_suppression_reason,
            verbose=self.verbose,
        )
        data.resource.add_info(message)
