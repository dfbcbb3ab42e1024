from app.models.application import Application
from app.models.application_payment_info import ApplicationPaymentInfo
from app.models.audit_log import AuditLog
from app.models.coverage import Coverage
from app.models.insurance_company import InsuranceCompany
from app.models.submission_result import SubmissionResult
from app.models.user_payment_method import UserPaymentMethod

__all__ = [
    "Application",
    "ApplicationPaymentInfo",
    "AuditLog",
    "Coverage",
    "InsuranceCompany",
    "SubmissionResult",
    "UserPaymentMethod",
]
