from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.statuses import LeadStatus, status_column_type


class Lead(Base):
    """Prospective or returning borrower moving through the sales pipeline."""

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)

    # Contact (stored as entered, compared via normalize_phone)
    phone_number = Column(String(20), nullable=False, index=True)
    phone_number_2 = Column(String(20), default="")
    phone_number_3 = Column(String(20), default="")
    full_name = Column(String(255), default="")
    email = Column(String(255), default="")

    # Pipeline
    status = Column(status_column_type(LeadStatus), nullable=False, default=LeadStatus.new, index=True)
    source = Column(String(100), default="System")
    lead_type = Column(String(50), default="new")  # new, reloan
    assigned_to = Column(String(256), index=True)
    follow_up_date = Column(DateTime(timezone=True))

    # Intake
    amount = Column(String(50), default="")
    employment_status = Column(String(50), default="")
    loan_purpose = Column(String(100), default="")

    # Eligibility
    eligibility_checked = Column(Boolean, default=False)
    eligibility_status = Column(String(50), default="")
    eligibility_notes = Column(Text)

    # Latest loan outcome (mirrors the latest appointment)
    loan_status = Column(String(50))  # P, PRS, RS, R
    loan_notes = Column(Text)

    is_deleted = Column(Boolean, default=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_by = Column(String(256))
    updated_by = Column(String(256))

    # Relationships
    appointments = relationship(
        "Appointment",
        back_populates="lead",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Lead {self.id} {self.status}>"

    @property
    def phone_numbers(self) -> list[str]:
        return [p for p in (self.phone_number, self.phone_number_2, self.phone_number_3) if p]
