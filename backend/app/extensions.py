"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

The trip snapshot cache and the notifier are NOT created here. They are
per-app services built by the factory and stored in app.extensions, so each
test app gets its own cache and callers always hold an explicit reference.

IMPORTANT — schema inheritance rule:
  All validation Schema classes (in app/schemas/) inherit from
  marshmallow.Schema directly, NOT from ma.Schema. ma.Schema requires an
  active Flask application context, and the unit tests run without one.
"""

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

ma = Marshmallow()

# Keys under app.extensions for the per-app services.
TRIP_CACHE_KEY = "trip_snapshot_cache"
NOTIFIER_KEY = "ledger_notifier"


def get_trip_cache():
    """The current app's TripSnapshotCache. Routes only."""
    return current_app.extensions[TRIP_CACHE_KEY]


def get_notifier():
    return current_app.extensions.get(NOTIFIER_KEY)
