"""
Shared pytest fixtures for the raciflow test suite.

Every test runs inside an app context against a fresh in-memory SQLite
schema; pure-core tests simply ignore the fixtures they do not request.

    client     Flask test client
    sales_org  Sales department with Manager (column 0) and Rep (column 1)
"""

import pytest

from raciflow import create_app
from raciflow.models import db as _db
from raciflow.models.organization import Department, Role


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    return create_app("testing")


@pytest.fixture(scope="session")
def _schema(app):
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _schema):
    """Discard whatever a test wrote: roll back, then rebuild every table."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    return app.test_client()


# ── Organization fixtures ────────────────────────────────────────────────


@pytest.fixture()
def sales_org():
    """Persist Sales (Manager, Rep) and return ``(department, manager, rep)``."""
    dept = Department(id="dept-sales", name="Sales", color="#0EA5E9", sort_order=0)
    manager = Role(id="role-manager", name="Manager", color="#F97316", sort_order=0)
    rep = Role(id="role-rep", name="Rep", color="#22C55E", sort_order=1)
    dept.roles.extend([manager, rep])
    _db.session.add(dept)
    _db.session.commit()
    return dept, manager, rep
