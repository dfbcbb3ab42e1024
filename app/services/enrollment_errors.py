"""Exception hierarchy for the enrollment submission pipeline.

Every error carries the HTTP-equivalent status the caller should see, a stable
``code`` and a ``details`` payload.  Carrier rejections keep the carrier's own
status code and error body untouched in ``details``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class PaymentResolutionKind(str, Enum):
    PAYMENT_INFO_NOT_FOUND = "payment_info_not_found"
    VAULT_LOOKUP_FAILED = "vault_lookup_failed"
    CORRUPT_INSTRUMENT = "corrupt_instrument"
    VAULT_RETRIEVAL_FAILED = "vault_retrieval_failed"
    MISSING_ENCRYPTED_FIELD = "missing_encrypted_field"
    DECRYPTION_FAILED = "decryption_failed"


class EnrollmentSubmissionError(Exception):
    status_code: int = 500
    code: str = "enrollment_submission_failed"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any | None = None,
    ) -> None:
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details if details is not None else message
        super().__init__(message)


class EnrollmentValidationError(EnrollmentSubmissionError):
    status_code = 400
    code = "invalid_effective_date"


class ApplicationNotFoundError(EnrollmentSubmissionError):
    status_code = 404
    code = "application_not_found"


class SubmissionConflictError(EnrollmentSubmissionError):
    """The application is not eligible right now, or another submission holds it."""

    status_code = 409
    code = "submission_conflict"


class PaymentResolutionError(EnrollmentSubmissionError):
    status_code = 422
    code = "payment_resolution_failed"
    kind: PaymentResolutionKind = PaymentResolutionKind.VAULT_LOOKUP_FAILED

    def __init__(self, message: str, **kwargs: Any) -> None:
        details = kwargs.pop("details", None)
        if details is None:
            details = {"kind": self.kind.value, "message": message}
        super().__init__(message, details=details, **kwargs)


class PaymentInfoNotFoundError(PaymentResolutionError):
    kind = PaymentResolutionKind.PAYMENT_INFO_NOT_FOUND


class VaultLookupFailedError(PaymentResolutionError):
    kind = PaymentResolutionKind.VAULT_LOOKUP_FAILED


class CorruptInstrumentError(PaymentResolutionError):
    kind = PaymentResolutionKind.CORRUPT_INSTRUMENT


class VaultRetrievalFailedError(PaymentResolutionError):
    kind = PaymentResolutionKind.VAULT_RETRIEVAL_FAILED


class MissingEncryptedFieldError(PaymentResolutionError):
    kind = PaymentResolutionKind.MISSING_ENCRYPTED_FIELD


class DecryptionFailedError(PaymentResolutionError):
    kind = PaymentResolutionKind.DECRYPTION_FAILED


class CarrierRejectionError(EnrollmentSubmissionError):
    """Carrier answered 4xx: a business outcome, passed through verbatim."""

    code = "carrier_rejected"


class CarrierUnavailableError(EnrollmentSubmissionError):
    """Network failure, timeout, carrier 5xx or adapter fault."""

    status_code = 500
    code = "carrier_unavailable"


class UnsupportedCarrierError(EnrollmentSubmissionError):
    status_code = 500
    code = "unsupported_carrier"


class SubmissionInternalError(EnrollmentSubmissionError):
    """A local fault (database, payload build) stopped the submission."""

    status_code = 500
    code = "submission_internal_error"


class SubmissionUnrecordedError(EnrollmentSubmissionError):
    """The carrier accepted the enrollment but the outcome could not be saved.

    The application stays ``submitting`` with ``carrier_submitted_at`` set, so
    no later request resubmits it; an operator must reconcile it by hand.
    """

    status_code = 500
    code = "submission_unrecorded"
