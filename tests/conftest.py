import pytest

from models import Expense, Split
from operations import create_ledger


def make_expense(id, amount, payer, splits, created_at="2024-03-01T12:00:00+00:00"):
    """Build an expense directly from (member, amount[, paid]) tuples"""
    out = []
    for s in splits:
        member, share = s[0], s[1]
        paid = s[2] if len(s) > 2 else 0
        out.append(Split(member=member, amount=share, paid_amount=paid, is_paid=paid == share and share > 0))
    return Expense(id=id, amount=amount, payer=payer, created_at=created_at, splits=tuple(out))


@pytest.fixture
def ledger():
    return create_ledger("Trip", ["A", "B", "C"], currency="eur")
