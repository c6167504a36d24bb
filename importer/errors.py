"""Error taxonomy for the import pipeline."""

from __future__ import annotations


class ImporterError(Exception):
    """Base class for pipeline errors."""


class NotFoundError(ImporterError):
    """A session, row or record does not exist."""


class InvalidStateError(ImporterError):
    """An operation was requested from a status that does not allow it."""

    def __init__(self, message: str, status: str | None = None):
        super().__init__(message)
        self.status = status


class ConfigurationError(ImporterError):
    """An enrichment step or provider is missing required configuration."""


class ExternalServiceError(ImporterError):
    """An AI, search or CRM call failed."""


class RuleExecutionError(ImporterError):
    """A rule raised while transforming or validating a field."""

    def __init__(self, rule_id: str, field_name: str, cause: BaseException):
        super().__init__(f"Rule {rule_id!r} failed on field {field_name!r}: {cause}")
        self.rule_id = rule_id
        self.field_name = field_name
        self.cause = cause


class ConflictError(ImporterError):
    """A concurrent writer inserted the same dedup key first."""
