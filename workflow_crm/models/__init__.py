"""
Solar Structure Workflow CRM
SQLAlchemy extension instance shared by every model module.

Usage:
    from workflow_crm.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
