# backend/ernamdb/apps/accounts/__init__.py
"""
Accounts app

Responsible for:
- Client organisations (airports, airlines, authorities)
- User profiles and their portal role

Identity, passwords and onboarding are owned by the external identity
service; the training engine only needs to know who a user is and which
organisation they belong to.
"""

from . import models  # noqa: F401

__all__ = ["models"]
