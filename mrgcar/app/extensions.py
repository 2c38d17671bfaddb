"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy and marshmallow as module-level objects so they can be
imported anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` or `ma` from here wherever needed.

    from mrgcar.app.extensions import db, ma

The auth collaborators (email sender, forgot-password limiter, Google
verifier) are not module singletons: they are built per app in the factory
and stored in app.extensions so tests can swap them for fakes.
"""

from flask_sqlalchemy import SQLAlchemy
from flask_marshmallow import Marshmallow

db = SQLAlchemy()

# Marshmallow instance — available for SQLAlchemy model serialization helpers.
#
# IMPORTANT — schema inheritance rule:
#   All validation Schema classes (in app/schemas/) must inherit from
#   marshmallow.Schema directly, NOT from ma.Schema.
#
#   ma.Schema requires an active Flask application context, and the schema
#   unit tests run without one.
ma = Marshmallow()


EMAIL_SENDER_KEY = "mrgcar.email_sender"
ATTEMPT_LIMITER_KEY = "mrgcar.attempt_limiter"
GOOGLE_VERIFIER_KEY = "mrgcar.google_verifier"
