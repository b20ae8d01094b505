"""
PM Tracker
Shared SQLAlchemy handle.

All model modules import ``db`` from here:
    from pmtracker.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
