"""Borrower models: returning customers handled through reloan appointments."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.statuses import AppointmentStatus, status_column_type


class Borrower(Base):
    """Existing customer eligible for a reloan."""

    __tablename__ = "borrowers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(20), nullable=False, index=True)
    phone_number_2 = Column(String(20), default="")
    phone_number_3 = Column(String(20), default="")
    email = Column(String(255), default="")

    # Free-form pipeline status (same vocabulary as leads)
    status = Column(String(50), nullable=False, default="new", index=True)
    source = Column(String(50), default="")
    assigned_to = Column(String(256))

    loan_status = Column(String(50))
    loan_notes = Column(Text)

    is_deleted = Column(Boolean, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    updated_by = Column(String(256))

    appointments = relationship(
        "BorrowerAppointment",
        back_populates="borrower",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<Borrower {self.id} {self.status}>"

    @property
    def phone_numbers(self) -> list[str]:
        return [p for p in (self.phone_number, self.phone_number_2, self.phone_number_3) if p]


class BorrowerAppointment(Base):
    """Reloan consultation for a borrower."""

    __tablename__ = "borrower_appointments"

    id = Column(Integer, primary_key=True, index=True)
    borrower_id = Column(
        Integer, ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    agent_id = Column(String(256), nullable=False, index=True)
    status = Column(
        status_column_type(AppointmentStatus),
        nullable=False,
        default=AppointmentStatus.upcoming,
        index=True,
    )
    appointment_type = Column(String(50), default="reloan_consultation")
    loan_status = Column(String(50))
    loan_notes = Column(Text)
    notes = Column(Text)

    start_datetime = Column(DateTime(timezone=True), nullable=False, index=True)
    end_datetime = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    updated_by = Column(String(256))

    borrower = relationship("Borrower", back_populates="appointments")

    def __repr__(self):
        return f"<BorrowerAppointment {self.id} borrower={self.borrower_id} {self.status}>"


class BorrowerAppointmentTimeslot(Base):
    """Link between a borrower appointment and its timeslot."""

    __tablename__ = "borrower_appointment_timeslots"

    borrower_appointment_id = Column(
        Integer, ForeignKey("borrower_appointments.id", ondelete="CASCADE"), primary_key=True
    )
    timeslot_id = Column(Integer, ForeignKey("timeslots.id", ondelete="CASCADE"), primary_key=True)
    primary = Column(Boolean, default=True)
