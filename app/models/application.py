import uuid

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class Application(Base):
    __tablename__ = "applications"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'submitted', 'pending_approval', 'approved', 'active', "
            "'rejected', 'cancelled', 'submission_failed', 'submitting')",
            name="ck_applications_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    company_id = Column(
        UUID(as_uuid=True),
        ForeignKey("insurance_companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = Column(String(30), nullable=False, default="draft", index=True)
    effective_date = Column(Date, nullable=True)
    enrollment_data = Column(JSONB, nullable=False, default=dict)
    api_response = Column(JSONB, nullable=True)
    api_error = Column(JSONB, nullable=True)
    submission_started_at = Column(DateTime(timezone=True), nullable=True)
    carrier_submitted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    insurance_company = relationship("InsuranceCompany", lazy="joined")
    coverages = relationship(
        "Coverage",
        back_populates="application",
        cascade="all, delete-orphan",
        order_by="Coverage.created_at",
    )
    submission_results = relationship(
        "SubmissionResult",
        back_populates="application",
        order_by="SubmissionResult.created_at.desc()",
    )

    @property
    def carrier_slug(self) -> str | None:
        company = getattr(self, "insurance_company", None)
        return company.slug if company else None
