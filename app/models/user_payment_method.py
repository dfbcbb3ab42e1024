import uuid

from sqlalchemy import Boolean, Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class UserPaymentMethod(Base):
    """A payment instrument saved by a user; sensitive numbers live in the vault."""

    __tablename__ = "user_payment_methods"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    payment_method = Column(String(30), nullable=False)
    card_holder_name = Column(String(255), nullable=True)
    card_brand = Column(String(50), nullable=True)
    card_last_four = Column(String(4), nullable=True)
    card_expiry_month = Column(String(2), nullable=True)
    card_expiry_year = Column(String(4), nullable=True)
    account_holder_name = Column(String(255), nullable=True)
    account_type = Column(String(30), nullable=True)
    account_last_four = Column(String(4), nullable=True)
    bank_name = Column(String(255), nullable=True)
    vault_secret_id = Column(UUID(as_uuid=True), nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
