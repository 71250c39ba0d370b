"""Inbound provider callbacks: signature check and state reconciliation."""
import hashlib
import hmac
from typing import Optional

import structlog

from models import TransactionStatus, WebhookEvent
from repositories import CustomerRepository, TransactionRepository
from services import to_major_units

logger = structlog.get_logger()

SIGNATURE_HEADER = "x-paystack-signature"

CHARGE_SUCCESS = "charge.success"
CHARGE_FAILED = "charge.failed"


def compute_signature(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha512).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """True when ``signature`` is the HMAC-SHA512 hex digest of ``body``."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature)


class WebhookReconciler:
    """Applies provider events to stored transactions and customers.

    Events that reference unknown records are dropped after logging; the
    provider always gets a 200 so it does not redeliver them.
    """

    def __init__(self, transaction_repo: TransactionRepository, customer_repo: CustomerRepository):
        self.transaction_repo = transaction_repo
        self.customer_repo = customer_repo

    async def handle(self, event: WebhookEvent) -> str:
        logger.info("Webhook received", webhook_event=event.event, reference=event.data.get("reference"))

        if event.event == CHARGE_SUCCESS:
            return await self._charge_success(event)
        if event.event == CHARGE_FAILED:
            return await self._charge_failed(event)

        logger.debug("Webhook event ignored", webhook_event=event.event)
        return "ignored"

    async def _charge_success(self, event: WebhookEvent) -> str:
        reference = event.data.get("reference")
        transaction = await self.transaction_repo.find_by_reference(reference) if reference else None

        if transaction is not None:
            if transaction.status == TransactionStatus.completed:
                logger.info("Duplicate charge.success ignored", reference=reference)
                return "duplicate"
            await self.transaction_repo.update(transaction.id, {
                "status": TransactionStatus.completed,
                "metadata": event.model_dump(),
            })
            logger.info("Transaction marked as completed", reference=reference, transaction_id=transaction.id)
        else:
            logger.info("No transaction for reference", reference=reference)

        credited = await self._credit_wallet(event)
        if transaction is None and not credited:
            return "unmatched"
        return "completed"

    async def _credit_wallet(self, event: WebhookEvent) -> bool:
        customer_data = event.data.get("customer") or {}
        code = customer_data.get("customer_code")
        customer = await self.customer_repo.find_by_code(code) if code else None
        if customer is None:
            return False

        amount = to_major_units(event.data.get("amount") or 0)
        updated = await self.customer_repo.update(customer.id, {
            "walletBalance": customer.walletBalance + amount,
        })
        logger.info(
            "Customer wallet credited",
            code=code,
            amount=amount,
            wallet_balance=updated.walletBalance
        )
        return True

    async def _charge_failed(self, event: WebhookEvent) -> str:
        reference = event.data.get("reference")
        transaction = await self.transaction_repo.find_by_reference(reference) if reference else None
        if transaction is None or transaction.status != TransactionStatus.pending:
            logger.info("charge.failed not applied", reference=reference)
            return "unmatched"

        await self.transaction_repo.update(transaction.id, {
            "status": TransactionStatus.failed,
            "metadata": event.model_dump(),
        })
        logger.info("Transaction marked as failed", reference=reference, transaction_id=transaction.id)
        return "failed"


# Factory function for dependency injection
def get_webhook_reconciler(
    transaction_repo: TransactionRepository,
    customer_repo: CustomerRepository
) -> WebhookReconciler:
    return WebhookReconciler(transaction_repo, customer_repo)
