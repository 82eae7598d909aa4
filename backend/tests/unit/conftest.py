"""
tests/unit/conftest.py — Shared setup for DB-free unit tests.

Relationships are declared by class name ("Trip", "Member", ...), so every
model must be imported before the first ORM instance is built or SQLAlchemy
cannot configure the mappers. The app factory does this for the real app;
unit tests never create one.
"""

from backend.app.models import expense, invitation, itinerary, member, settlement, split, trip  # noqa: F401
