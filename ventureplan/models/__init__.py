"""
Venture Plan Workbench
SQLAlchemy extension instance shared by every model module.

Usage:
    from ventureplan.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
