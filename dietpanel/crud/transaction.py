"""Purchase transaction CRUD"""
import uuid
from decimal import Decimal

from sqlalchemy import update
from sqlmodel import Session, select

from dietpanel.enums import TransactionStatus
from dietpanel.models import Transaction, utc_now


def create(
    *, session: Session, user_id: uuid.UUID, item: str, amount: Decimal, payer_email: str
) -> Transaction:
    tx = Transaction(user_id=user_id, item=item, amount=amount, payer_email=payer_email)
    session.add(tx)
    session.commit()
    session.refresh(tx)
    return tx


def get_by_id(*, session: Session, transaction_id: uuid.UUID) -> Transaction | None:
    return session.get(Transaction, transaction_id)


def has_pending(*, session: Session, user_id: uuid.UUID, items: list[str]) -> bool:
    statement = (
        select(Transaction.id)
        .where(
            Transaction.user_id == user_id,
            Transaction.item.in_(items),
            Transaction.status == TransactionStatus.pending.value,
        )
        .limit(1)
    )
    return session.exec(statement).first() is not None


def set_provider_id(*, session: Session, tx: Transaction, tpay_transaction_id: str) -> Transaction:
    tx.tpay_transaction_id = tpay_transaction_id
    tx.updated_at = utc_now()
    session.add(tx)
    session.commit()
    session.refresh(tx)
    return tx


def mark_failed(*, session: Session, tx: Transaction) -> None:
    """Used when the provider call fails right after the pending row was created."""
    session.exec(  # type: ignore[call-overload]
        update(Transaction)
        .where(Transaction.id == tx.id, Transaction.status == TransactionStatus.pending.value)
        .values(status=TransactionStatus.failed.value, updated_at=utc_now())
    )
    session.commit()


def complete_if_pending(
    *,
    session: Session,
    transaction_id: uuid.UUID,
    status: TransactionStatus,
    tpay_transaction_id: str | None,
) -> bool:
    """
    Guarded terminal transition: pending -> status.

    Does not commit; the webhook commits it together with the access grant.

    Returns:
        True if this call performed the transition, False if another
        delivery already did
    """
    values: dict = {"status": status.value, "updated_at": utc_now()}
    if tpay_transaction_id:
        values["tpay_transaction_id"] = tpay_transaction_id
    statement = (
        update(Transaction)
        .where(
            Transaction.id == transaction_id,
            Transaction.status == TransactionStatus.pending.value,
        )
        .values(**values)
    )
    result = session.exec(statement)  # type: ignore[call-overload]
    return (result.rowcount or 0) == 1
