import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from app.db.base import Base


class SubmissionResult(Base):
    """Append-only record of one coverage line's outcome in a submission attempt."""

    __tablename__ = "application_submission_results"
    __allow_unmapped__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    carrier_slug = Column(String(100), nullable=True)
    plan_key = Column(String(100), nullable=True)
    submission_received = Column(Boolean, nullable=False, default=False)
    policy_no = Column(String(100), nullable=True)
    total_rate = Column(Numeric(12, 2), nullable=True)
    effective_date = Column(Date, nullable=True)
    submission_errors = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    application = relationship("Application", back_populates="submission_results")
