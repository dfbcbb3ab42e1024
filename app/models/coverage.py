import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Coverage(Base):
    __tablename__ = "coverages"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("monthly_premium >= 0", name="ck_coverages_premium_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan_key = Column(String(100), nullable=False)
    carrier_name = Column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes; keep the column name.
    plan_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    monthly_premium = Column(Numeric(12, 2), nullable=True)
    effective_date = Column(Date, nullable=True)
    payment_frequency = Column(String(30), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("Application", back_populates="coverages")

    @property
    def product_code(self) -> str | None:
        metadata = self.plan_metadata or {}
        value = metadata.get("productCode") or metadata.get("product_code")
        return str(value) if value else None
