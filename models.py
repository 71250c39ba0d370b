from pydantic import BaseModel, Field, field_validator
from enum import Enum
from typing import Any, Dict, List, Optional
from datetime import datetime

# Keeps amount * 100 well inside float and int range
MAX_PAYMENT_AMOUNT = 1_000_000_000_000


class TransactionStatus(str, Enum):
    pending = "pending"
    completed = "completed"
    failed = "failed"


# Stored records

class Transaction(BaseModel):
    id: str = Field(..., description="Generated transaction identifier")
    amount: float = Field(..., description="Amount in major currency unit")
    reference: str = Field(..., description="Provider-issued payment reference")
    authUrl: str = Field(..., description="Authorization URL for the customer")
    metadata: Optional[Dict[str, Any]] = None
    status: TransactionStatus = TransactionStatus.pending


class Account(BaseModel):
    id: str = Field(..., description="Generated account identifier")
    bankName: str
    bankId: int
    bankSlug: str
    accountName: str
    accountNumber: str
    assigned: bool
    currency: str
    customerCode: str = Field(..., description="Code of the owning customer")
    metadata: Optional[Dict[str, Any]] = None


class Customer(BaseModel):
    id: str = Field(..., description="Generated customer identifier")
    email: str
    firstName: str
    lastName: str
    code: str = Field(..., description="Provider-issued customer code")
    metadata: Optional[Dict[str, Any]] = None
    walletBalance: float = Field(0, description="Funds received, major currency unit")


# Requests

class InitializePaymentRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=254, description="Payer email")
    amount: Optional[float] = Field(
        None,
        le=MAX_PAYMENT_AMOUNT,
        allow_inf_nan=False,
        description="Amount in major currency unit"
    )

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v):
        if v is not None and v <= 0:
            raise ValueError('Amount must be greater than zero')
        return v


class CreateCustomerRequest(BaseModel):
    email: Optional[str] = Field(None, max_length=254)
    firstName: Optional[str] = Field(None, max_length=100)
    lastName: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)


class CreateVirtualAccountRequest(BaseModel):
    customer: Optional[str] = Field(None, description="Customer code to attach the account to")
    preferredBank: Optional[str] = Field(None, description="Provider bank slug")


class WebhookEvent(BaseModel):
    event: Optional[str] = Field(None, description="Event discriminator, e.g. charge.success")
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator('data', mode='before')
    @classmethod
    def default_data(cls, v):
        return {} if v is None else v


# Responses

class SuccessResponse(BaseModel):
    success: bool = True
    data: Any = None


class ErrorResponse(BaseModel):
    success: bool = False
    message: str = Field(..., description="Error description")
    errors: Optional[List[Dict[str, Any]]] = None


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service health status")
    timestamp: datetime = Field(default_factory=datetime.now)
    transactions_count: int
    accounts_count: int
    customers_count: int
