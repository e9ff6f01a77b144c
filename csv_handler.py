"""
CSV export and import functionality for settle-up
"""
from __future__ import annotations
import csv
from decimal import Decimal
from typing import List

from models import Expense, Split

FIELDS = ['id', 'created_at', 'payer', 'amount', 'description', 'splits']


def _encode_splits(splits) -> str:
    """member:amount:paid:percentage, joined by ';' (percentage may be blank)"""
    parts = []
    for s in splits:
        if ";" in s.member:
            raise ValueError(f"member name {s.member!r} cannot be written to CSV (contains ';')")
        pct = "" if s.percentage is None else str(s.percentage)
        parts.append(f"{s.member}:{s.amount}:{s.settled}:{pct}")
    return ';'.join(parts)


def _decode_splits(text: str) -> tuple:
    splits = []
    for pair in text.split(';'):
        if not pair.strip():
            continue
        try:
            member, amount, paid, pct = pair.rsplit(':', 3)
        except ValueError:
            raise ValueError(f"bad split entry: {pair!r}") from None
        amount = int(amount)
        paid = int(paid)
        if not 0 <= paid <= amount:
            raise ValueError(f"paid amount {paid} out of range for split of {amount} in {pair!r}")
        splits.append(Split(
            member=member.strip(),
            amount=amount,
            percentage=Decimal(pct) if pct.strip() else None,
            is_paid=amount > 0 and paid == amount,
            paid_amount=paid,
        ))
    return tuple(splits)


def export_expenses_to_csv(expenses: List[Expense], filepath: str) -> None:
    """
    Export expenses list to CSV file
    CSV columns: id, created_at, payer, amount, description, splits
    Amounts are minor units.
    """
    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)
        writer.writerow(FIELDS)

        for e in expenses:
            writer.writerow([
                e.id,
                e.created_at,
                e.payer,
                e.amount,
                e.description,
                _encode_splits(e.splits),
            ])


def import_expenses_from_csv(filepath: str) -> List[Expense]:
    """
    Import expenses list from CSV file
    Returns list of Expense objects. Split consistency is not checked here;
    compute_balances reports expenses whose splits do not add up.
    """
    expenses = []

    with open(filepath, 'r', encoding='utf-8', newline='') as f:
        reader = csv.DictReader(f)

        for row in reader:
            expense = Expense(
                id=row['id'],
                created_at=row['created_at'],
                payer=row['payer'],
                amount=int(row['amount']),
                description=row.get('description') or '',
                splits=_decode_splits(row.get('splits') or ''),
            )
            expenses.append(expense)

    return expenses
