"""Borrower test factory."""

import factory
from faker import Faker

fake = Faker()


class BorrowerFactory(factory.Factory):
    """
    Factory for generating Borrower column values.

    Usage:
        borrower = Borrower(**BorrowerFactory())
    """

    class Meta:
        model = dict

    full_name = factory.LazyFunction(fake.name)
    phone_number = factory.Sequence(lambda n: f"+658{n:07d}")
    phone_number_2 = ""
    phone_number_3 = ""
    email = factory.LazyFunction(lambda: fake.email().lower())
    status = "assigned"
    source = "Referral"
    assigned_to = "agent-1"
    is_deleted = False
