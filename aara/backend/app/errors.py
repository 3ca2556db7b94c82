from __future__ import annotations

from typing import Optional


class AaraError(Exception):
    """Base error. Carries an HTTP-style status code so a web layer can map it directly."""

    status_code = 500

    def __init__(self, detail: str, status_code: Optional[int] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(AaraError):
    status_code = 404


class ValidationError(AaraError):
    status_code = 400


class InsufficientDataError(AaraError):
    status_code = 400


class NotEligibleError(AaraError):
    status_code = 403

    def __init__(self, detail: str, eligibility: Optional[dict] = None) -> None:
        super().__init__(detail)
        self.eligibility = eligibility or {}


class CheckInTooSoonError(AaraError):
    status_code = 429

    def __init__(self, detail: str, retry_after_seconds: int) -> None:
        super().__init__(detail)
        self.retry_after_seconds = retry_after_seconds


class ReportLockedError(AaraError):
    status_code = 409


class InvalidTransitionError(AaraError):
    status_code = 400


class ConsentRequiredError(AaraError):
    status_code = 400


class ShareRevokedError(AaraError):
    status_code = 410


class StoreError(AaraError):
    status_code = 500
