"""
DACUM Competency Profile Platform
SQLAlchemy models package.

All models share the single ``db`` instance created here and bound to the
Flask app in ``dacum.create_app``.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
