"""Error taxonomy shared by the check service, the scanner and the CLI."""

from __future__ import annotations

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_SOURCE_UNREADABLE = 2
EXIT_TEMPLATE_INVALID = 3
EXIT_ROW_LIMIT = 4
EXIT_ROWS_FAILED = 5


class IntakeError(Exception):
    default_message = "import failed"
    default_code = EXIT_COMMAND_ERROR

    def __init__(self, message: str | None = None, code: int | None = None) -> None:
        super().__init__(message or self.default_message)
        self.code = self.default_code if code is None else code


class TemplateInvalid(IntakeError):
    default_message = "The template is incorrect."
    default_code = EXIT_TEMPLATE_INVALID


class MaxRowsExceeded(IntakeError):
    default_message = "The maximum number of rows was exceeded."
    default_code = EXIT_ROW_LIMIT


class MaxRowsInvalid(IntakeError):
    default_message = "max row num error."
    default_code = EXIT_ROW_LIMIT


class EmptyInput(IntakeError):
    default_message = "This is an empty file."
    default_code = EXIT_ROW_LIMIT


class SourceUnavailable(IntakeError):
    default_message = "Could not open row source"
    default_code = EXIT_SOURCE_UNREADABLE


class SinkUnavailable(IntakeError):
    default_message = "Could not write import results"


class ConfigError(IntakeError):
    default_message = "Invalid scan configuration"


class SchemaInvalid(ConfigError):
    default_message = "Invalid record schema"


class ConsumerRowFailure(Exception):
    """A business-rule failure a consumer attached to one row."""
