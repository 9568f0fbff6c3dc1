"""
Purchase transaction model.
"""
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Numeric, String
from sqlmodel import Field, SQLModel

from dietpanel.enums import TransactionStatus

from .base import UTCDateTime, utc_now


class Transaction(SQLModel, table=True):
    """
    A payment attempt for a PZK item.

    Fields:
    - id: our UUID, sent to Tpay as ``hiddenDescription`` and echoed back as ``tr_crc``
    - item: "PZK_MODULE_{n}" or "PZK_BUNDLE_ALL"
    - status: pending -> success | failed, written once by the webhook
    - tpay_transaction_id: provider id, known after the provider call succeeds
    """
    __tablename__ = "transactions"
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    user_id: uuid.UUID = Field(foreign_key="users.id", index=True)
    item: str = Field(max_length=32, index=True)
    amount: Decimal = Field(sa_column=Column(Numeric(10, 2), nullable=False))
    status: TransactionStatus = Field(
        default=TransactionStatus.pending, sa_column=Column(String(16), nullable=False)
    )
    tpay_transaction_id: str | None = Field(default=None, max_length=64)
    payer_email: str = Field(max_length=255)
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(UTCDateTime(timezone=True), nullable=False),
    )
