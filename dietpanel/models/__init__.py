"""
Database models.

Split by entity family:
- user.py: users, sessions, login attempts, password reset tokens
- invitation.py: signup invitations
- weight.py: weight entries
- event.py: analytics / audit events
- pzk.py: PZK categories, materials, pdfs, videos, module access, notes, reviews
- transaction.py: purchase transactions
"""
from sqlmodel import SQLModel

from .base import UTCDateTime, utc_now
from .event import Event
from .invitation import Invitation
from .pzk import (
    PzkCategory,
    PzkMaterial,
    PzkMaterialPdf,
    PzkMaterialVideo,
    PzkModuleAccess,
    PzkNote,
    PzkReview,
)
from .transaction import Transaction
from .user import AuthSession, LoginAttempt, PasswordResetToken, User
from .weight import WeightEntry

__all__ = [
    "SQLModel",
    "UTCDateTime",
    "utc_now",
    "User",
    "AuthSession",
    "LoginAttempt",
    "PasswordResetToken",
    "Invitation",
    "WeightEntry",
    "Event",
    "PzkCategory",
    "PzkMaterial",
    "PzkMaterialPdf",
    "PzkMaterialVideo",
    "PzkModuleAccess",
    "PzkNote",
    "PzkReview",
    "Transaction",
]
