from pathlib import Path
from typing import Optional

from config import get_settings
from models import Account, Customer, Transaction
from storage import JsonFileStore


class TransactionRepository(JsonFileStore[Transaction]):
    model = Transaction
    key_field = "reference"
    id_prefix = "txn"

    async def find_by_reference(self, reference: str) -> Optional[Transaction]:
        return await self.find_by_key(reference)


class AccountRepository(JsonFileStore[Account]):
    model = Account
    key_field = "customerCode"
    id_prefix = "acc"

    async def find_by_customer_code(self, customer_code: str) -> Optional[Account]:
        return await self.find_by_key(customer_code)


class CustomerRepository(JsonFileStore[Customer]):
    model = Customer
    key_field = "code"
    id_prefix = "cus"

    async def find_by_code(self, code: str) -> Optional[Customer]:
        return await self.find_by_key(code)


# Process-wide instances, created on first use and handed out through Depends
_transaction_repo: Optional[TransactionRepository] = None
_account_repo: Optional[AccountRepository] = None
_customer_repo: Optional[CustomerRepository] = None


def _data_dir() -> Path:
    return Path(get_settings().data_dir)


def get_transaction_repository() -> TransactionRepository:
    global _transaction_repo
    if _transaction_repo is None:
        _transaction_repo = TransactionRepository(_data_dir() / "transactions.json")
    return _transaction_repo


def get_account_repository() -> AccountRepository:
    global _account_repo
    if _account_repo is None:
        _account_repo = AccountRepository(_data_dir() / "accounts.json")
    return _account_repo


def get_customer_repository() -> CustomerRepository:
    global _customer_repo
    if _customer_repo is None:
        _customer_repo = CustomerRepository(_data_dir() / "customers.json")
    return _customer_repo


# For tests
def reset_repositories(data_dir=None):
    """Drop cached repositories; with ``data_dir`` rebuild them there (for testing only)."""
    global _transaction_repo, _account_repo, _customer_repo
    _transaction_repo = _account_repo = _customer_repo = None
    if data_dir is not None:
        base = Path(data_dir)
        _transaction_repo = TransactionRepository(base / "transactions.json")
        _account_repo = AccountRepository(base / "accounts.json")
        _customer_repo = CustomerRepository(base / "customers.json")
