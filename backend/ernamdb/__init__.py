# backend/ernamdb/__init__.py
"""
ERNAMdb: training session lifecycle, assessments and certification.

Import ORM models from each app so that Alembic and
Base.metadata.create_all() see all tables. The model classes themselves
live in ernamdb/apps/*/models.py.
"""

from .apps.accounts import models as accounts_models          # organisations + users
from .apps.training import models as training_models          # standards, sessions, certificates
from .apps.audit import models as audit_models                # audit trail

__all__ = [
    "accounts_models",
    "training_models",
    "audit_models",
]
