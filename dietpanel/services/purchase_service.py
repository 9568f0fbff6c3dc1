"""
PZK purchase flow.

initiate_purchase
    access and pending-transaction checks, price lookup, pending row, provider
    transaction, provider id stored on the row

process_payment_callback
    the webhook side; the only writer of a transaction's terminal status.
    The pending -> success|failed transition is a guarded update, so a replayed
    delivery finds nothing to update and grants nothing.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlmodel import Session

from dietpanel.core.config import settings
from dietpanel.crud import pzk_access, transaction as transaction_crud
from dietpanel.crud import user as user_crud
from dietpanel.enums import TransactionStatus
from dietpanel.integrations.mailer import Mailer, purchase_confirmation_email
from dietpanel.integrations.tpay import TpayClient, TpayError
from dietpanel.models import Transaction, utc_now
from dietpanel.services.access_service import PZK_MODULES
from dietpanel.services.audit import AuditQueue
from dietpanel.services.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

BUNDLE_ALL = "ALL"
BUNDLE_ITEM = "PZK_BUNDLE_ALL"
ACCESS_MONTHS = 12


def item_for_module(module: int) -> str:
    return f"PZK_MODULE_{module}"


def modules_for_item(item: str) -> list[int]:
    """
    Modules granted by an item code.

    Raises:
        ValueError: unknown item
    """
    if item == BUNDLE_ITEM:
        return list(PZK_MODULES)
    prefix = "PZK_MODULE_"
    if item.startswith(prefix) and item[len(prefix):].isdigit():
        module = int(item[len(prefix):])
        if module in PZK_MODULES:
            return [module]
    raise ValueError(f"Unknown purchase item: {item}")


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    leap = year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)
    days_in_month = [31, 29 if leap else 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31][month - 1]
    return start.replace(year=year, month=month, day=min(start.day, days_in_month))


@dataclass(frozen=True)
class PurchaseRedirect:
    redirect_url: str
    transaction_id: uuid.UUID


class PurchaseService:
    def __init__(
        self,
        *,
        session: Session,
        tpay: TpayClient,
        audit: AuditQueue,
        mailer: Mailer | None = None,
    ) -> None:
        self.session = session
        self.tpay = tpay
        self.audit = audit
        self.mailer = mailer

    def initiate_purchase(
        self,
        *,
        user_id: uuid.UUID,
        module: int | None = None,
        bundle: str | None = None,
        now: datetime | None = None,
    ) -> Result[PurchaseRedirect]:
        now = now or utc_now()
        if bundle is not None:
            if bundle != BUNDLE_ALL:
                return Err(ErrorKind.validation, "Unknown bundle", details={"field": "bundle"})
            item, modules = BUNDLE_ITEM, list(PZK_MODULES)
            description = "PZK Pakiet: wszystkie moduły"
        elif module in PZK_MODULES:
            item, modules = item_for_module(module), [module]
            description = f"PZK Moduł {module}"
        else:
            return Err(ErrorKind.validation, "Module must be 1, 2 or 3", details={"field": "module"})

        active = [
            m for m in modules
            if pzk_access.has_active_access_to_module(
                session=self.session, user_id=user_id, module=m, now=now
            )
        ]
        # a bundle is only refused when it would add nothing
        if active and (bundle is None or len(active) == len(modules)):
            return Err(
                ErrorKind.conflict,
                "You already have active access to this module",
                code="already_has_access",
                details={"modules": active},
            )

        if transaction_crud.has_pending(
            session=self.session, user_id=user_id, items=[item]
        ):
            return Err(
                ErrorKind.validation,
                "A payment for this item is already pending",
                code="pending_transaction",
            )

        user = user_crud.get_by_id(session=self.session, user_id=user_id)
        if user is None:
            return Err(ErrorKind.unauthenticated, "User not found")

        try:
            amount = settings.price_for(item)
        except ValueError:
            logger.exception("Price configuration error for %s", item)
            return Err(ErrorKind.unexpected, "Payment configuration error")

        tx = transaction_crud.create(
            session=self.session,
            user_id=user_id,
            item=item,
            amount=amount,
            payer_email=user.email,
        )

        payer_name = None
        if user.first_name and user.last_name:
            payer_name = f"{user.first_name} {user.last_name}"
        site_url = settings.SITE_URL.rstrip("/")
        return_url = f"{site_url}/pzk/platnosc/sukces?transaction={tx.id}"
        notification_url = (
            settings.TPAY_NOTIFICATION_URL
            or f"{site_url}{settings.API_V1_STR}/pzk/purchase/callback"
        )

        try:
            provider_tx = self.tpay.create_transaction(
                amount=amount,
                description=description,
                crc=str(tx.id),
                payer_email=user.email,
                payer_name=payer_name,
                return_url=return_url,
                notification_url=notification_url,
            )
        except TpayError as e:
            logger.error("Tpay transaction for %s failed: %s", tx.id, e)
            transaction_crud.mark_failed(session=self.session, tx=tx)
            self.audit.emit(
                "pzk_purchase_initiate_failed",
                user_id=user_id,
                properties={"transactionId": tx.id, "item": item},
            )
            return Err(ErrorKind.external_service, "Payment provider unavailable, try again later")

        transaction_crud.set_provider_id(
            session=self.session, tx=tx, tpay_transaction_id=provider_tx.transaction_id
        )
        self.audit.emit(
            "pzk_purchase_initiated",
            user_id=user_id,
            properties={"transactionId": tx.id, "item": item, "amount": str(amount)},
        )
        return Ok(PurchaseRedirect(redirect_url=provider_tx.payment_url, transaction_id=tx.id))

    def process_payment_callback(
        self,
        *,
        transaction_id: uuid.UUID,
        tpay_transaction_id: str,
        success: bool,
        amount: str | None = None,
        now: datetime | None = None,
    ) -> Result[TransactionStatus]:
        """
        Apply a verified webhook delivery.

        Returns the transaction's status after the call. A transaction that is
        no longer pending is left untouched and its status returned.
        """
        now = now or utc_now()
        tx = transaction_crud.get_by_id(session=self.session, transaction_id=transaction_id)
        if tx is None:
            logger.error("Webhook for unknown transaction %s", transaction_id)
            return Err(ErrorKind.not_found, "Transaction not found")

        if tx.status != TransactionStatus.pending:
            logger.info("Transaction %s already %s, skipping", tx.id, tx.status)
            return Ok(TransactionStatus(tx.status))

        if success and amount is not None and not _amount_matches(tx.amount, amount):
            logger.warning(
                "Amount mismatch for %s: expected %s, got %s", tx.id, tx.amount, amount
            )

        status = TransactionStatus.success if success else TransactionStatus.failed
        try:
            performed = transaction_crud.complete_if_pending(
                session=self.session,
                transaction_id=tx.id,
                status=status,
                tpay_transaction_id=tpay_transaction_id,
            )
            if not performed:
                # another delivery won the race
                self.session.rollback()
                self.session.refresh(tx)
                return Ok(TransactionStatus(tx.status))

            modules: list[int] = []
            expires_at = add_months(now, ACCESS_MONTHS)
            if success:
                modules = modules_for_item(tx.item)
                for module in modules:
                    pzk_access.grant(
                        session=self.session,
                        user_id=tx.user_id,
                        module=module,
                        start_at=now,
                        expires_at=expires_at,
                        commit=False,
                    )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        if success:
            logger.info("Transaction %s paid, modules %s granted", tx.id, modules)
            self._send_confirmation(tx, modules, expires_at)
            self.audit.emit(
                "pzk_purchase_success",
                user_id=tx.user_id,
                properties={"transactionId": tx.id, "item": tx.item, "modules": modules},
            )
        else:
            logger.info("Transaction %s failed at provider", tx.id)
            self.audit.emit(
                "pzk_purchase_failed",
                user_id=tx.user_id,
                properties={"transactionId": tx.id, "item": tx.item},
            )
        return Ok(status)

    def _send_confirmation(self, tx: Transaction, modules: list[int], expires_at: datetime) -> None:
        if self.mailer is None:
            return
        subject, text, html = purchase_confirmation_email(
            modules,
            expires_at.date().isoformat(),
            f"{settings.SITE_URL.rstrip('/')}/pacjent/pzk/katalog",
        )
        self.audit.background_tasks.add_task(
            self.mailer.send_best_effort, to=tx.payer_email, subject=subject, text=text, html=html
        )


def _amount_matches(expected: Decimal, received: str) -> bool:
    try:
        return Decimal(received).quantize(Decimal("0.01")) == Decimal(expected).quantize(Decimal("0.01"))
    except ArithmeticError:
        return False
