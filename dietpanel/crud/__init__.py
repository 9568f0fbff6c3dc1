"""CRUD operations, one module per entity family"""
from . import (
    auth_session,
    event,
    invitation,
    login_attempt,
    password_reset,
    patient,
    pzk_access,
    pzk_material,
    pzk_note,
    pzk_review,
    transaction,
    user,
    weight,
)
from .event import record_event
from .user import create as create_user
from .user import get_by_email as get_user_by_email
from .user import get_by_id as get_user_by_id

__all__ = [
    "auth_session",
    "event",
    "invitation",
    "login_attempt",
    "password_reset",
    "patient",
    "pzk_access",
    "pzk_material",
    "pzk_note",
    "pzk_review",
    "transaction",
    "user",
    "weight",
    "record_event",
    "create_user",
    "get_user_by_email",
    "get_user_by_id",
]
