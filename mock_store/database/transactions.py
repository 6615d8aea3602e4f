"""STK push transaction storage for the mock store"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from ..models.mpesa import Transaction, TransactionStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TransactionDatabase:
    """In-memory M-Pesa transactions"""

    def __init__(self):
        self.transactions: dict[str, Transaction] = {}
        self.by_idempotency_key: dict[str, str] = {}

    def reset(self) -> None:
        self.transactions.clear()
        self.by_idempotency_key.clear()

    def find_by_key(self, idempotency_key: Optional[str]) -> Optional[Transaction]:
        if not idempotency_key:
            return None
        checkout_request_id = self.by_idempotency_key.get(idempotency_key)
        return self.transactions.get(checkout_request_id) if checkout_request_id else None

    def create(
        self,
        order_id: str,
        phone_number: str,
        amount: int,
        idempotency_key: Optional[str] = None,
    ) -> Transaction:
        """Record a new STK push; a known idempotency key returns the original"""
        existing = self.find_by_key(idempotency_key)
        if existing:
            return existing

        now = _now()
        suffix = uuid.uuid4().hex[:12]
        transaction = Transaction(
            checkout_request_id=f"ws_CO_{now:%d%m%Y%H%M%S}{suffix}",
            merchant_request_id=f"{uuid.uuid4().int % 100000}-{suffix}",
            order_id=order_id,
            phone_number=phone_number,
            amount=amount,
            idempotency_key=idempotency_key,
            created_at=now,
            updated_at=now,
        )
        self.transactions[transaction.checkout_request_id] = transaction
        if idempotency_key:
            self.by_idempotency_key[idempotency_key] = transaction.checkout_request_id
        return transaction

    def get(self, checkout_request_id: str) -> Optional[Transaction]:
        return self.transactions.get(checkout_request_id)

    def resolve(
        self,
        checkout_request_id: str,
        result_code: int,
        result_desc: str,
        receipt_number: Optional[str] = None,
    ) -> Optional[Transaction]:
        """Apply a provider result; only a PENDING transaction changes"""
        transaction = self.get(checkout_request_id)
        if not transaction or transaction.status != TransactionStatus.PENDING:
            return None
        transaction.status = TransactionStatus.COMPLETED if result_code == 0 else TransactionStatus.FAILED
        transaction.result_code = str(result_code)
        transaction.result_desc = result_desc
        transaction.mpesa_receipt_number = receipt_number
        transaction.updated_at = _now()
        return transaction

    def request_cancel(self, checkout_request_id: str) -> Optional[Transaction]:
        transaction = self.get(checkout_request_id)
        if transaction:
            transaction.cancel_requested = True
            transaction.updated_at = _now()
        return transaction


# Singleton instance
transaction_db = TransactionDatabase()
