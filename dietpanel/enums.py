"""
Enumerations shared by models, schemas and services.

Every enum subclasses ``str`` so values serialize as plain strings and can be
stored in ``String`` columns.
"""
from enum import Enum


class UserRole(str, Enum):
    patient = "patient"
    dietitian = "dietitian"


class UserStatus(str, Enum):
    """
    Account status.

    Only ``active`` accounts may log in.
    """
    active = "active"
    paused = "paused"
    ended = "ended"


class Gender(str, Enum):
    male = "male"
    female = "female"
    other = "other"


class WeightSource(str, Enum):
    patient = "patient"
    dietitian = "dietitian"


class MaterialStatus(str, Enum):
    """
    PZK material lifecycle.

    - draft / archived: never exposed, every read path answers 404
    - publish_soon: visible as a locked teaser, never downloadable
    - published: fully visible to holders of active module access
    """
    draft = "draft"
    publish_soon = "publish_soon"
    published = "published"
    archived = "archived"


class TransactionStatus(str, Enum):
    """
    Purchase transaction status.

    pending -> success | failed, written exactly once by the payment webhook.
    """
    pending = "pending"
    success = "success"
    failed = "failed"


class ReviewSort(str, Enum):
    createdAtDesc = "createdAtDesc"
    updatedAtDesc = "updatedAtDesc"


class LockReason(str, Enum):
    no_module_access = "no_module_access"
    publish_soon = "publish_soon"
    publish_soon_with_access = "publish_soon_with_access"
