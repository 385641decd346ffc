from __future__ import annotations


class SequenceServiceError(Exception):
    code = "SEQUENCE_ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **context) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def to_detail(self) -> dict:
        detail = {"code": self.code, "message": self.message, "retryable": self.retryable}
        if self.context:
            detail.update(self.context)
        return detail


class ConfigNotFound(SequenceServiceError):
    code = "CONFIG_NOT_FOUND"
    status_code = 404


class DuplicateConfig(SequenceServiceError):
    code = "DUPLICATE_CONFIG"
    status_code = 409


class TenantMismatch(SequenceServiceError):
    code = "TENANT_MISMATCH"
    status_code = 403


class InvalidDocumentTypeCode(SequenceServiceError):
    code = "INVALID_DOCUMENT_TYPE_CODE"
    status_code = 400


class SequenceValidationError(SequenceServiceError):
    code = "VALIDATION_ERROR"
    status_code = 422


class SequenceNotDeletable(SequenceServiceError):
    code = "NOT_DELETABLE"
    status_code = 403


class BackfillNotSupported(SequenceServiceError):
    code = "BACKFILL_NOT_SUPPORTED"
    status_code = 400


class ConcurrencyConflict(SequenceServiceError):
    """The atomic increment kept failing; nothing was issued, the caller may retry."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 503
    retryable = True
