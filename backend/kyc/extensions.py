# Overview: Shared Flask extension instances; SQLAlchemy for the submission models, Migrate for Alembic revisions.

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
