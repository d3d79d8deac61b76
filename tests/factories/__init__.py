"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation.
"""

from .lead import LeadFactory, ReloanLeadFactory
from .appointment import AppointmentFactory
from .borrower import BorrowerFactory
from .call_row import CallRowFactory, ReloanCallRowFactory

__all__ = [
    "LeadFactory",
    "ReloanLeadFactory",
    "AppointmentFactory",
    "BorrowerFactory",
    "CallRowFactory",
    "ReloanCallRowFactory",
]
