"""
SQLAlchemy models — Flask-SQLAlchemy ``db`` instance.

Usage:
    from raciflow.models import db
    from raciflow.models.organization import Department, Role
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
