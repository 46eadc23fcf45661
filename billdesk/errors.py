from __future__ import annotations


class BillingError(Exception):
    kind = 'internal'
    status_code = 500

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_payload(self) -> dict:
        return {
            'success': False,
            'error': self.message,
            'kind': self.kind,
            'details': self.details,
        }


class ConfigError(BillingError):
    kind = 'config'

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            f"Missing required environment variables: {', '.join(missing)}",
            details={'missing': list(missing)},
        )
        self.missing = list(missing)


class RemoteError(BillingError):
    kind = 'remote'
    status_code = 502


class TransportError(RemoteError):
    kind = 'transport'

    def __init__(self, message: str, *, http_status: int | None = None) -> None:
        details = {'http_status': http_status} if http_status is not None else None
        super().__init__(message, details=details)
        self.http_status = http_status


class BackendError(RemoteError):
    kind = 'backend'

    def __init__(self, message: str, *, errors: list[dict] | None = None, http_status: int | None = None) -> None:
        details = {'errors': errors or []}
        if http_status is not None:
            details['http_status'] = http_status
        super().__init__(message, details=details)
        self.errors = errors or []
        self.http_status = http_status

    @property
    def is_unique_violation(self) -> bool:
        return 'UNIQUE constraint failed' in self.message


class AuthError(BackendError):
    kind = 'auth'
    status_code = 503


class BatchError(RemoteError):
    kind = 'batch'

    def __init__(self, index: int, cause: RemoteError) -> None:
        super().__init__(
            f'Batch statement {index} failed: {cause.message}',
            details={'index': index, 'cause_kind': cause.kind, **cause.details},
        )
        self.index = index
        self.cause = cause


class ValidationError(BillingError, ValueError):
    kind = 'validation'
    status_code = 400


class NotFoundError(BillingError, LookupError):
    kind = 'not_found'
    status_code = 404


class ConflictError(BillingError):
    kind = 'conflict'
    status_code = 409


class DuplicateBillNumber(ConflictError):
    def __init__(self, bill_number: str) -> None:
        super().__init__(f'Bill number {bill_number} already exists', details={'bill_number': bill_number})
        self.bill_number = bill_number
