"""
tests/unit/conftest.py — Shared fixtures for unit tests.

Unit tests never touch a database. Services that read current_app.config
(token lifetimes, secrets, bcrypt cost) get a bare Flask app carrying the
testing configuration, with no extensions initialised.
"""

from __future__ import annotations

import pytest
from flask import Flask

from mrgcar.config import TestingConfig


@pytest.fixture
def app_ctx():
    """Pushes an application context of a bare Flask app with TestingConfig."""
    app = Flask(__name__)
    app.config.from_object(TestingConfig)
    with app.app_context():
        yield app
