"""Appointment test factory. Times come from the slot the test books into."""

import factory
from faker import Faker

from app.models.statuses import AppointmentStatus

fake = Faker()


class AppointmentFactory(factory.Factory):
    class Meta:
        model = dict

    agent_id = "agent-1"
    status = AppointmentStatus.upcoming
    lead_source = "SEO"
    notes = factory.LazyFunction(
        lambda: fake.sentence() if fake.boolean(chance_of_getting_true=30) else None
    )
    created_by = "agent-1"
    updated_by = "agent-1"
