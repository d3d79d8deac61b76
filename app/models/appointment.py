from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.database import Base
from app.models.statuses import AppointmentStatus, status_column_type


class Appointment(Base):
    """One scheduled meeting between a lead and an agent.

    start/end datetimes are stored in UTC; business rules read them in
    Singapore time through the reconciliation Clock.
    """

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    agent_id = Column(String(256), nullable=False, index=True)

    status = Column(
        status_column_type(AppointmentStatus),
        nullable=False,
        default=AppointmentStatus.upcoming,
        index=True,
    )
    loan_status = Column(String(50))  # P, PRS, RS, R
    loan_notes = Column(Text)
    notes = Column(Text)
    lead_source = Column(String(100), default="SEO")

    start_datetime = Column(DateTime(timezone=True), nullable=False, index=True)
    end_datetime = Column(DateTime(timezone=True), nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    created_by = Column(String(256))
    updated_by = Column(String(256))

    # Relationships
    lead = relationship("Lead", back_populates="appointments")
    timeslot_links = relationship(
        "AppointmentTimeslot",
        back_populates="appointment",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Appointment {self.id} lead={self.lead_id} {self.status}>"


class AppointmentTimeslot(Base):
    """Link between an appointment and the timeslot whose capacity it holds."""

    __tablename__ = "appointment_timeslots"

    appointment_id = Column(
        Integer, ForeignKey("appointments.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    timeslot_id = Column(
        Integer, ForeignKey("timeslots.id", ondelete="CASCADE"), primary_key=True, index=True
    )
    primary = Column(Boolean, default=True)

    appointment = relationship("Appointment", back_populates="timeslot_links")
