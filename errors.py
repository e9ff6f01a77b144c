"""
Exceptions raised by the settle-up engine
"""
from __future__ import annotations
from typing import Optional


class SettleUpError(Exception):
    """Base class for engine failures"""


class InvalidSplit(SettleUpError):
    """Expense shares rejected before anything is stored"""

    AMOUNT_MISMATCH = "amount mismatch"
    PERCENTAGE_MISMATCH = "percentage sum mismatch"
    INVALID_PERCENTAGE = "invalid percentage"
    UNKNOWN_MEMBER = "unknown member"
    NON_POSITIVE_AMOUNT = "non-positive amount"
    NEGATIVE_SHARE = "negative share"
    NO_MEMBERS = "no members"
    DUPLICATE_MEMBER = "duplicate member"
    UNKNOWN_METHOD = "unknown method"
    OVERPAYMENT = "overpayment"

    def __init__(self, reason: str, detail: Optional[str] = None):
        self.reason = reason
        self.detail = detail
        msg = f"{reason}: {detail}" if detail else reason
        super().__init__(msg)


class BalanceInconsistency(SettleUpError):
    """Net balances of a group do not sum to zero"""

    def __init__(self, total: int, expense_ids=()):
        self.total = total
        self.expense_ids = tuple(expense_ids)
        msg = f"balances do not sum to zero (total {total})"
        if self.expense_ids:
            msg += f"; inconsistent expenses: {', '.join(self.expense_ids)}"
        super().__init__(msg)


class UnsettleableInput(SettleUpError):
    """Settlement could not bring every balance to zero"""

    def __init__(self, remaining):
        self.remaining = dict(remaining)
        super().__init__(f"balances left unsettled: {self.remaining}")
