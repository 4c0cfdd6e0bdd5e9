"""Account ledger - per-customer, per-purpose, per-currency balances with atomic credit/debit/hold"""

import logging
import uuid
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from microcredit_engine.domain.exceptions import (
    AccountInactiveError,
    InsufficientBalanceError,
    InvalidAmountError,
    NotFoundError,
)
from microcredit_engine.domain.models import AccountStatus, AccountType, Currency, EntryKind, Money
from microcredit_engine.infrastructure.database.models import Account, AccountBalance, LedgerEntry
from microcredit_engine.infrastructure.database.repositories import AccountRepository, CustomerRepository

logger = logging.getLogger(__name__)

ACCOUNT_PREFIXES = {
    AccountType.STANDARD: "S01",
    AccountType.MANDATORY_SAVINGS: "S02",
    AccountType.CAUTION: "S03",
    AccountType.CREDIT: "S04",
    AccountType.PROGRAMMED_SAVINGS: "S05",
    AccountType.FINES: "S06",
}


class AccountLedger:
    """
    Ledger primitives over the account tables.

    Every mutation locks the balance row, validates, then writes the new
    balance and a journal entry in the caller's transaction. Validation
    failures raise before anything is written, so a rollback is never
    needed to undo a half-applied movement. Callers own the commit.
    """

    def __init__(self, db: Session):
        self.db = db
        self.accounts = AccountRepository(db)
        self.customers = CustomerRepository(db)

    # ----- accounts -----

    def open_customer_accounts(self, customer_id: str, opened_on: date) -> Dict[AccountType, Account]:
        """Open the six purpose-typed sub-accounts of a customer (existing ones are kept)"""
        return {account_type: self.ensure_account(customer_id, account_type, opened_on) for account_type in AccountType}

    def ensure_account(self, customer_id: str, account_type: AccountType, opened_on: date) -> Account:
        account = self.accounts.get_by_type(customer_id, account_type.value)
        if account is not None:
            return account
        if self.customers.get(customer_id) is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        number = f"{ACCOUNT_PREFIXES[account_type]}-{customer_id}"
        logger.info("Opening account", extra={"customer_id": customer_id, "account_type": account_type.value})
        return self.accounts.create(customer_id, account_type.value, number, opened_on)

    def get_account(self, customer_id: str, account_type: AccountType) -> Account:
        account = self.accounts.get_by_type(customer_id, account_type.value)
        if account is None:
            raise NotFoundError(f"{account_type.value} account of customer {customer_id} not found")
        return account

    def find_account(self, customer_id: str, account_type: AccountType) -> Optional[Account]:
        return self.accounts.get_by_type(customer_id, account_type.value)

    # ----- balances -----

    def get_balance(self, account_id: uuid.UUID, currency: Currency) -> Money:
        row = self.accounts.get_balance_row(account_id, currency.value)
        return Money(row.balance_cents if row else 0, currency)

    def get_held(self, account_id: uuid.UUID, currency: Currency) -> Money:
        row = self.accounts.get_balance_row(account_id, currency.value)
        return Money(row.held_cents if row else 0, currency)

    def available(self, account_id: uuid.UUID, currency: Currency) -> Money:
        """Balance not covered by holds"""
        row = self.accounts.get_balance_row(account_id, currency.value)
        if row is None:
            return Money.zero(currency)
        return Money(row.balance_cents - row.held_cents, currency)

    # ----- movements -----

    def deposit(self, customer_id: str, account_type: AccountType, amount: Money, business_date: date) -> LedgerEntry:
        account = self.get_account(customer_id, account_type)
        return self.credit(account.id, amount, EntryKind.DEPOSIT, business_date)

    def credit(
        self,
        account_id: uuid.UUID,
        amount: Money,
        kind: EntryKind,
        business_date: date,
        credit_id: uuid.UUID | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        self._check_amount(amount)
        row = self._locked_row(account_id, amount.currency)
        row.balance_cents += amount.amount_cents
        return self._journal(row, kind, amount.amount_cents, business_date, credit_id, description)

    def debit(
        self,
        account_id: uuid.UUID,
        amount: Money,
        kind: EntryKind,
        business_date: date,
        credit_id: uuid.UUID | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        """Debit up to the available balance; held funds cannot be debited"""
        self._check_amount(amount)
        row = self._locked_row(account_id, amount.currency)
        available = row.balance_cents - row.held_cents
        if amount.amount_cents > available:
            raise InsufficientBalanceError(
                f"Account {account_id} has {available / 100:.2f} {amount.currency.value} available, "
                f"cannot debit {amount.amount_cents / 100:.2f}"
            )
        row.balance_cents -= amount.amount_cents
        return self._journal(row, kind, -amount.amount_cents, business_date, credit_id, description)

    def hold(
        self,
        account_id: uuid.UUID,
        amount: Money,
        business_date: date,
        credit_id: uuid.UUID | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        """Reserve part of the available balance; the funds stay on the account"""
        self._check_amount(amount)
        row = self._locked_row(account_id, amount.currency)
        available = row.balance_cents - row.held_cents
        if amount.amount_cents > available:
            raise InsufficientBalanceError(
                f"Account {account_id} has {available / 100:.2f} {amount.currency.value} available, "
                f"cannot hold {amount.amount_cents / 100:.2f}"
            )
        row.held_cents += amount.amount_cents
        return self._journal(row, EntryKind.HOLD, amount.amount_cents, business_date, credit_id, description)

    def release(
        self,
        account_id: uuid.UUID,
        amount: Money,
        business_date: date,
        credit_id: uuid.UUID | None = None,
        description: str | None = None,
    ) -> LedgerEntry:
        self._check_amount(amount)
        row = self._locked_row(account_id, amount.currency)
        if amount.amount_cents > row.held_cents:
            raise InsufficientBalanceError(
                f"Account {account_id} holds {row.held_cents / 100:.2f} {amount.currency.value}, "
                f"cannot release {amount.amount_cents / 100:.2f}"
            )
        row.held_cents -= amount.amount_cents
        return self._journal(row, EntryKind.RELEASE, amount.amount_cents, business_date, credit_id, description)

    # ----- helpers -----

    @staticmethod
    def _check_amount(amount: Money) -> None:
        if amount.amount_cents <= 0:
            raise InvalidAmountError(f"Ledger amounts must be positive, got {amount.amount_cents}")

    def _locked_row(self, account_id: uuid.UUID, currency: Currency) -> AccountBalance:
        account = self.accounts.get(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        if account.status != AccountStatus.ACTIVE.value:
            raise AccountInactiveError(f"Account {account_id} is {account.status}")

        row = self.accounts.get_balance_row(account_id, currency.value, for_update=True)
        if row is None:
            row = self.accounts.create_balance_row(account_id, currency.value)
        return row

    def _journal(
        self,
        row: AccountBalance,
        kind: EntryKind,
        signed_amount_cents: int,
        business_date: date,
        credit_id: uuid.UUID | None,
        description: str | None,
    ) -> LedgerEntry:
        return self.accounts.add_entry(
            account_id=row.account_id,
            currency=row.currency,
            kind=kind.value,
            amount_cents=signed_amount_cents,
            balance_after_cents=row.balance_cents,
            held_after_cents=row.held_cents,
            business_date=business_date,
            credit_id=credit_id,
            description=description,
        )
