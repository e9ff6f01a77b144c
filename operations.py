"""
Ledger operations: the storage side that feeds the engine

The Ledger is owned by the caller. These functions mutate it in place and
bump its version; balance queries run against an immutable snapshot so a
computation always sees one consistent set of expenses. Callers sharing a
ledger between threads must serialize mutation per group.
"""
from __future__ import annotations
import logging
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple

from computations import compute_balances, compute_transfers, normalize_splits
from errors import InvalidSplit
from models import Expense, Group, Ledger, Member, SettlementTransfer, SplitMethod
from utils import now_str

logger = logging.getLogger(__name__)


class Snapshot(NamedTuple):
    members: Tuple[Member, ...]
    expenses: Tuple[Expense, ...]
    version: int


def create_ledger(
    name: str,
    members: Iterable[Member],
    currency: str = "USD",
    default_split_method=SplitMethod.EQUAL,
) -> Ledger:
    members = list(members)
    if len(set(members)) != len(members):
        raise ValueError("member names must be unique")
    for m in members:
        _check_member_name(m)
    currency = currency.strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValueError(f"invalid currency code: {currency!r}")
    group = Group(
        name=name,
        members=members,
        currency=currency,
        default_split_method=SplitMethod(default_split_method),
    )
    return Ledger(group=group)


def _check_member_name(member: Member) -> None:
    # ";" separates splits in the CSV format
    if not member or not member.strip() or ";" in member:
        raise ValueError(f"invalid member name: {member!r}")


def _touch(ledger: Ledger) -> None:
    ledger.version += 1


def add_member(ledger: Ledger, member: Member) -> None:
    _check_member_name(member)
    if member in ledger.members:
        raise ValueError(f"{member} is already a member")
    ledger.group.members.append(member)
    _touch(ledger)


def remove_member(ledger: Ledger, member: Member) -> None:
    """Drop a member from future expenses; past expenses stay as recorded"""
    if member not in ledger.members:
        raise KeyError(member)
    ledger.group.members.remove(member)
    _touch(ledger)


def add_expense(
    ledger: Ledger,
    amount: int,
    payer: Member,
    participants: Optional[Iterable[Member]] = None,
    method=None,
    shares: Optional[Mapping[Member, object]] = None,
    description: str = "",
    created_at: Optional[str] = None,
) -> Expense:
    """
    Validate and record an expense. Participants default to every current
    member in group order and the method to the group's default.
    """
    members = ledger.members
    if payer not in members:
        raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, f"payer {payer}")
    if method is None:
        method = ledger.group.default_split_method
    if participants is None:
        if shares and method != SplitMethod.EQUAL:
            # keep group order so leftovers land deterministically
            participants = [m for m in members if m in shares] + [m for m in shares if m not in members]
        else:
            participants = members
    splits = normalize_splits(amount, participants, method, shares, group_members=members)
    expense = Expense(
        id=uuid.uuid4().hex,
        amount=amount,
        payer=payer,
        created_at=created_at or now_str(),
        splits=splits,
        description=description,
    )
    ledger.expenses.append(expense)
    _touch(ledger)
    logger.info("Added expense %s: %d paid by %s (%s)", expense.id, amount, payer, SplitMethod(method).value)
    return expense


def _find_expense(ledger: Ledger, expense_id: str) -> int:
    for i, e in enumerate(ledger.expenses):
        if e.id == expense_id:
            return i
    raise KeyError(expense_id)


def get_expense(ledger: Ledger, expense_id: str) -> Expense:
    return ledger.expenses[_find_expense(ledger, expense_id)]


def delete_expense(ledger: Ledger, expense_id: str) -> Expense:
    expense = ledger.expenses.pop(_find_expense(ledger, expense_id))
    _touch(ledger)
    return expense


def record_payment(ledger: Ledger, expense_id: str, member: Member, amount: int) -> Expense:
    """
    Record that ``member`` paid ``amount`` towards their split of an
    expense. The split is marked paid once nothing is outstanding.
    """
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise TypeError(f"payment must be an int in minor units, got {amount!r}")
    if amount <= 0:
        raise InvalidSplit(InvalidSplit.NON_POSITIVE_AMOUNT, str(amount))
    idx = _find_expense(ledger, expense_id)
    expense = ledger.expenses[idx]
    splits = list(expense.splits)
    for i, s in enumerate(splits):
        if s.member == member:
            break
    else:
        raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, f"{member} has no share in expense {expense_id}")
    if amount > s.outstanding:
        raise InvalidSplit(
            InvalidSplit.OVERPAYMENT,
            f"{member} owes {s.outstanding} on expense {expense_id}, got {amount}",
        )
    paid = s.paid_amount + amount
    splits[i] = replace(s, paid_amount=paid, is_paid=paid == s.amount)
    expense = replace(expense, splits=tuple(splits))
    ledger.expenses[idx] = expense
    _touch(ledger)
    logger.info("Recorded payment of %d by %s on expense %s", amount, member, expense_id)
    return expense


def settle_expense(ledger: Ledger, expense_id: str) -> Expense:
    """Mark every split of an expense as fully paid"""
    idx = _find_expense(ledger, expense_id)
    expense = ledger.expenses[idx]
    splits = tuple(replace(s, paid_amount=s.amount, is_paid=True) for s in expense.splits)
    expense = replace(expense, splits=splits)
    ledger.expenses[idx] = expense
    _touch(ledger)
    logger.info("Settled expense %s", expense_id)
    return expense


def resplit_method(ledger: Ledger, expense: Expense) -> SplitMethod:
    """Method an edit falls back to: percentage if the expense was split that way"""
    if expense.splits and all(s.percentage is not None for s in expense.splits):
        return SplitMethod.PERCENTAGE
    return SplitMethod(ledger.group.default_split_method)


def update_expense(
    ledger: Ledger,
    expense_id: str,
    amount: Optional[int] = None,
    payer: Optional[Member] = None,
    participants: Optional[Iterable[Member]] = None,
    method=None,
    shares: Optional[Mapping[Member, object]] = None,
    description: Optional[str] = None,
) -> Expense:
    """
    Edit an expense, keeping its id and creation time.

    Changing the amount, participants, method or shares splits the expense
    again against the current membership. An expense split by percentage
    keeps its percentages unless new ones are given. Payments already
    recorded stay with their members and may not exceed the new shares.
    """
    idx = _find_expense(ledger, expense_id)
    old = ledger.expenses[idx]
    members = ledger.members
    if payer is None:
        payer = old.payer
    elif payer != old.payer and payer not in members:
        raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, f"payer {payer}")

    resplit = (
        (amount is not None and amount != old.amount)
        or participants is not None
        or method is not None
        or shares is not None
    )
    splits = old.splits
    if resplit:
        if amount is None:
            amount = old.amount
        if method is None:
            method = resplit_method(ledger, old)
        if shares is None and method == SplitMethod.PERCENTAGE and all(s.percentage is not None for s in old.splits):
            shares = {s.member: s.percentage for s in old.splits}
        if participants is None:
            if shares and method != SplitMethod.EQUAL:
                order = list(members) + [s.member for s in old.splits if s.member not in members]
                participants = [m for m in order if m in shares] + [m for m in shares if m not in order]
            else:
                participants = [s.member for s in old.splits]
        fresh = normalize_splits(amount, participants, method, shares, group_members=members)

        paid = {s.member: s.settled for s in old.splits}
        out = []
        for s in fresh:
            p = paid.pop(s.member, 0)
            if p > s.amount:
                raise InvalidSplit(InvalidSplit.OVERPAYMENT, f"{s.member} already paid {p}, new share is {s.amount}")
            out.append(replace(s, paid_amount=p, is_paid=p > 0 and p == s.amount))
        dropped = sorted(m for m, p in paid.items() if p)
        if dropped:
            raise InvalidSplit(InvalidSplit.OVERPAYMENT, f"payments recorded for removed participants: {', '.join(dropped)}")
        splits = tuple(out)
    else:
        amount = old.amount

    expense = replace(
        old,
        amount=amount,
        payer=payer,
        splits=splits,
        description=old.description if description is None else description,
    )
    ledger.expenses[idx] = expense
    _touch(ledger)
    logger.info("Updated expense %s", expense_id)
    return expense


def import_expenses(ledger: Ledger, expenses: Iterable[Expense], replace_existing: bool = False) -> int:
    """
    Add expenses produced outside the ledger, e.g. read from CSV.

    Payers and split members must be current or former members of the
    group, and the ledger must still balance afterwards. Expenses whose id
    is already present are skipped. Nothing changes if any check fails.
    Returns the number of expenses added.
    """
    known = set(ledger.members)
    for e in ledger.expenses:
        known.add(e.payer)
        known.update(s.member for s in e.splits)

    seen = set() if replace_existing else {e.id for e in ledger.expenses}
    added = []
    for e in expenses:
        if isinstance(e.amount, bool) or not isinstance(e.amount, int) or e.amount <= 0:
            raise InvalidSplit(InvalidSplit.NON_POSITIVE_AMOUNT, f"expense {e.id}: {e.amount!r}")
        strangers = sorted({m for m in [e.payer] + [s.member for s in e.splits] if m not in known})
        if strangers:
            raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, f"expense {e.id}: {', '.join(strangers)}")
        for s in e.splits:
            if not 0 <= s.paid_amount <= s.amount:
                raise InvalidSplit(InvalidSplit.OVERPAYMENT, f"expense {e.id}: {s.member} paid {s.paid_amount} of {s.amount}")
        if e.id in seen:
            continue
        seen.add(e.id)
        added.append(e)

    result = added if replace_existing else ledger.expenses + added
    # raises BalanceInconsistency before anything is stored
    compute_balances(ledger.members, result)
    ledger.expenses = result
    _touch(ledger)
    logger.info("Imported %d expenses", len(added))
    return len(added)


def snapshot(ledger: Ledger) -> Snapshot:
    """Immutable view of the ledger for one computation"""
    return Snapshot(tuple(ledger.members), tuple(ledger.expenses), ledger.version)


def group_balances(ledger: Ledger) -> Dict[Member, int]:
    snap = snapshot(ledger)
    return compute_balances(snap.members, snap.expenses)


def member_balance(ledger: Ledger, member: Member) -> int:
    balances = group_balances(ledger)
    if member not in balances:
        raise KeyError(member)
    return balances[member]


def settlement_plan(ledger: Ledger) -> List[SettlementTransfer]:
    return compute_transfers(group_balances(ledger))
