"""Custom exceptions for the discovery and fill core."""

from __future__ import annotations


class UnreadableInputError(Exception):
    """Raised when template bytes cannot be parsed as a PDF at all."""

    def __init__(self, message: str, *, has_original: bool = True) -> None:
        super().__init__(message)
        self.has_original = has_original


class FieldNotFoundError(Exception):
    """Raised when a mapped field has no addressable control in the document."""

    def __init__(self, message: str, *, field_name: str) -> None:
        super().__init__(message)
        self.field_name = field_name


class UnsupportedFieldOperationError(Exception):
    """Raised when a value cannot be applied to a field (e.g. unknown choice)."""

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        value: str | None = None,
        options: tuple[str, ...] = (),
    ) -> None:
        super().__init__(message)
        self.field_name = field_name
        self.value = value
        self.options = options


class ValidationFailedError(Exception):
    """Raised when filled output bytes fail post-fill validation."""

    def __init__(self, message: str, *, check: str) -> None:
        super().__init__(message)
        self.check = check


class RecordProcessingFailedError(Exception):
    """Raised when one record of a batch cannot be processed."""

    def __init__(self, message: str, *, record_id: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.record_id = record_id
        self.cause = cause
