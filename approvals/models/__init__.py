"""
Request Approval Workflow
Shared SQLAlchemy handle.

Bound to the Flask app once by ``db.init_app(app)`` in the factory.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
