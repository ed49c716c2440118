"""
Daily Score Engine
SQLAlchemy extension instance shared by all model modules.

Usage:
    from dailyscore.models import db
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
