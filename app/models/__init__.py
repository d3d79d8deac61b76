from app.models.statuses import LeadStatus, AppointmentStatus, LoanCode, LoanType
from app.models.lead import Lead
from app.models.appointment import Appointment, AppointmentTimeslot
from app.models.timeslot import Timeslot, CalendarSettings, CalendarException
from app.models.borrower import Borrower, BorrowerAppointment, BorrowerAppointmentTimeslot

__all__ = [
    "LeadStatus",
    "AppointmentStatus",
    "LoanCode",
    "LoanType",
    "Lead",
    "Appointment",
    "AppointmentTimeslot",
    "Timeslot",
    "CalendarSettings",
    "CalendarException",
    "Borrower",
    "BorrowerAppointment",
    "BorrowerAppointmentTimeslot",
]
