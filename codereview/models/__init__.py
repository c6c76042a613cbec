"""
Database extension shared by all models.

The ``db`` object is bound to an application in ``create_app`` via
``db.init_app(app)``. Services never reach for it directly: they receive
``db.session`` through their constructor so tests can hand in a different
session or a double.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
