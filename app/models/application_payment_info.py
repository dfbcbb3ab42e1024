import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class ApplicationPaymentInfo(Base):
    """Payment instrument attached to an application.

    Either inline (Fernet ciphertext columns) or vault-backed through
    ``user_payment_method_id``.  Rotation flips ``is_current``; at most one
    current row exists per application.
    """

    __tablename__ = "application_payment_info"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "payment_method IN ('credit_card', 'debit_card', 'ach')",
            name="ck_app_payment_info_method",
        ),
        Index(
            "uq_app_payment_info_current",
            "application_id",
            unique=True,
            postgresql_where=text("is_current"),
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_current = Column(Boolean, nullable=False, default=True)
    payment_method = Column(String(30), nullable=False)
    user_payment_method_id = Column(
        UUID(as_uuid=True),
        ForeignKey("user_payment_methods.id", ondelete="SET NULL"),
        nullable=True,
    )

    card_number_encrypted = Column(Text, nullable=True)
    cvv_encrypted = Column(Text, nullable=True)
    card_holder_name = Column(String(255), nullable=True)
    card_brand = Column(String(50), nullable=True)
    card_last_four = Column(String(4), nullable=True)
    card_expiry_month = Column(String(2), nullable=True)
    card_expiry_year = Column(String(4), nullable=True)

    account_number_encrypted = Column(Text, nullable=True)
    routing_number_encrypted = Column(Text, nullable=True)
    account_holder_name = Column(String(255), nullable=True)
    account_type = Column(String(30), nullable=True)
    bank_name = Column(String(255), nullable=True)
    desired_draft_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
