from typing import Any, Dict, Optional
from fastapi import HTTPException
import structlog

from config import Settings, get_settings
from gateway import ApiClient, ProviderError
from models import (
    CreateCustomerRequest,
    CreateVirtualAccountRequest,
    InitializePaymentRequest,
    TransactionStatus,
)
from repositories import AccountRepository, CustomerRepository, TransactionRepository

# Configure structured logging
logger = structlog.get_logger()

# Paystack amounts are in kobo
MINOR_UNITS_PER_MAJOR = 100


def to_minor_units(amount: float) -> int:
    return int(round(amount * MINOR_UNITS_PER_MAJOR))


def to_major_units(amount: float) -> float:
    return amount / MINOR_UNITS_PER_MAJOR


class PaymentService:
    """Proxies one provider call per operation and records the result locally."""

    def __init__(
        self,
        provider: ApiClient,
        transaction_repo: TransactionRepository,
        account_repo: AccountRepository,
        customer_repo: CustomerRepository,
        settings: Optional[Settings] = None
    ):
        self.provider = provider
        self.transaction_repo = transaction_repo
        self.account_repo = account_repo
        self.customer_repo = customer_repo
        self.settings = settings or get_settings()

    async def create_virtual_account(self, request: CreateVirtualAccountRequest) -> Dict[str, Any]:
        """Create a dedicated virtual account and record it once per customer code."""
        payload = {
            "customer": request.customer or self.settings.default_customer_code,
            "preferred_bank": request.preferredBank or self.settings.default_preferred_bank,
        }

        data = await self._call_provider(
            "/dedicated_account",
            payload,
            failure_message="Failed to create virtual account",
            empty_message="Unable to create virtual account"
        )

        bank = data.get("bank") or {}
        customer = data.get("customer") or {}
        customer_code = customer.get("customer_code") or payload["customer"]

        account, created = await self.account_repo.find_or_create(customer_code, {
            "bankName": bank.get("name", ""),
            "bankId": bank.get("id", 0),
            "bankSlug": bank.get("slug", ""),
            "accountName": data.get("account_name", ""),
            "accountNumber": data.get("account_number", ""),
            "assigned": bool(data.get("assigned", False)),
            "currency": data.get("currency", "NGN"),
            "metadata": data,
        })

        logger.info(
            "Virtual account recorded",
            account_id=account.id,
            customer_code=customer_code,
            created=created
        )
        return data

    async def create_customer(self, request: CreateCustomerRequest) -> Dict[str, Any]:
        """Create a provider customer and record it once per customer code."""
        payload = {
            "email": request.email or self.settings.default_email,
            "first_name": request.firstName or self.settings.default_first_name,
            "last_name": request.lastName or self.settings.default_last_name,
            "phone": request.phone or self.settings.default_phone,
        }

        data = await self._call_provider(
            "/customer",
            payload,
            failure_message="Failed to create customer",
            empty_message="Unable to create customer"
        )

        code = data.get("customer_code")
        if not code:
            logger.warning("Provider customer has no customer_code", data=data)
            raise HTTPException(status_code=400, detail="Unable to create customer")

        customer, created = await self.customer_repo.find_or_create(code, {
            "email": data.get("email") or payload["email"],
            "firstName": data.get("first_name") or payload["first_name"],
            "lastName": data.get("last_name") or payload["last_name"],
            "metadata": data.get("metadata") or None,
        })

        logger.info("Customer recorded", customer_id=customer.id, code=code, created=created)
        return data

    async def initialize_payment(self, request: InitializePaymentRequest) -> Dict[str, Any]:
        """Initialize a payment and record a pending transaction in major units."""
        email = request.email or self.settings.default_email
        amount = request.amount if request.amount is not None else self.settings.default_amount

        data = await self._call_provider(
            "/transaction/initialize",
            {"email": email, "amount": to_minor_units(amount)},
            failure_message="Failed to initialize payment",
            empty_message="Unable to initialize payment"
        )

        reference = data.get("reference")
        if not reference:
            logger.warning("Provider payment has no reference", data=data)
            raise HTTPException(status_code=400, detail="Unable to initialize payment")

        transaction, created = await self.transaction_repo.find_or_create(reference, {
            "amount": amount,
            "authUrl": data.get("authorization_url", ""),
            "status": TransactionStatus.pending,
        })

        logger.info(
            "Payment initialized",
            transaction_id=transaction.id,
            reference=reference,
            amount=amount,
            created=created
        )
        return data

    async def _call_provider(
        self,
        path: str,
        payload: Dict[str, Any],
        failure_message: str,
        empty_message: str
    ) -> Dict[str, Any]:
        """Post to the provider and return the ``data`` member of its envelope."""
        try:
            body = await self.provider.post(path, payload)
        except ProviderError as e:
            logger.error(
                "Provider call failed",
                path=path,
                error=str(e),
                status_code=e.status_code
            )
            raise HTTPException(status_code=500, detail=failure_message)

        data = body.get("data") if isinstance(body, dict) else None
        if not data or not isinstance(data, dict):
            logger.warning("Provider returned empty payload", path=path)
            raise HTTPException(status_code=400, detail=empty_message)

        return data


# Factory function for dependency injection
def get_payment_service(
    provider: ApiClient,
    transaction_repo: TransactionRepository,
    account_repo: AccountRepository,
    customer_repo: CustomerRepository
) -> PaymentService:
    return PaymentService(provider, transaction_repo, account_repo, customer_repo)
