"""
Business logic and computations for settle-up

Splitting an expense, folding expenses into net balances, and planning the
transfers that settle a group. All functions here are pure: they read the
expenses they are given and never mutate them. Money is integer minor units
throughout.
"""
from __future__ import annotations
import heapq
import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from errors import BalanceInconsistency, InvalidSplit, UnsettleableInput
from models import Expense, Member, SettlementTransfer, Split, SplitMethod
from utils import parse_date, to_percentage

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)
PERCENT_EPSILON = Decimal("0.01")


def _is_int(x) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


def _absorb_leftover(amounts: List[int], total: int, weights: Sequence) -> List[int]:
    """
    Move rounding drift onto members one unit at a time, cycling in member
    order. Members with zero weight never receive or give up a unit.
    """
    drift = total - sum(amounts)
    if not drift:
        return amounts
    eligible = [i for i, w in enumerate(weights) if w > 0]
    step = 1 if drift > 0 else -1
    k = 0
    while drift:
        idx = eligible[k % len(eligible)]
        k += 1
        if step < 0 and amounts[idx] == 0:
            continue
        amounts[idx] += step
        drift -= step
    return amounts


def normalize_splits(
    amount: int,
    members: Sequence[Member],
    method,
    shares: Optional[Mapping[Member, object]] = None,
    group_members: Optional[Iterable[Member]] = None,
) -> Tuple[Split, ...]:
    """
    Validate an expense's shares and turn them into splits that add up to
    ``amount`` exactly.

    ``members`` is the ordered list of participants; its order decides who
    absorbs rounding leftovers. ``shares`` maps member -> percentage for the
    percentage method and member -> minor units for the fixed method; it is
    ignored for equal splits. Participants absent from ``shares`` get 0.
    """
    if not _is_int(amount):
        raise TypeError(f"expense amount must be an int in minor units, got {amount!r}")
    if amount <= 0:
        raise InvalidSplit(InvalidSplit.NON_POSITIVE_AMOUNT, str(amount))
    try:
        method = SplitMethod(method)
    except ValueError:
        raise InvalidSplit(InvalidSplit.UNKNOWN_METHOD, str(method)) from None

    members = list(members)
    if not members:
        raise InvalidSplit(InvalidSplit.NO_MEMBERS)
    seen = set()
    for m in members:
        if m in seen:
            raise InvalidSplit(InvalidSplit.DUPLICATE_MEMBER, str(m))
        seen.add(m)
    if group_members is not None:
        known = set(group_members)
        unknown = [m for m in members if m not in known]
        if unknown:
            raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, ", ".join(map(str, unknown)))

    shares = dict(shares or {})
    if method is not SplitMethod.EQUAL:
        stray = [m for m in shares if m not in seen]
        if stray:
            raise InvalidSplit(InvalidSplit.UNKNOWN_MEMBER, ", ".join(map(str, stray)))

    if method is SplitMethod.EQUAL:
        base, remainder = divmod(amount, len(members))
        return tuple(
            Split(member=m, amount=base + (1 if i < remainder else 0))
            for i, m in enumerate(members)
        )

    if method is SplitMethod.PERCENTAGE:
        try:
            pcts = [to_percentage(shares.get(m, 0)) for m in members]
        except ValueError as ex:
            raise InvalidSplit(InvalidSplit.INVALID_PERCENTAGE, str(ex)) from None
        for m, p in zip(members, pcts):
            if p < 0:
                raise InvalidSplit(InvalidSplit.NEGATIVE_SHARE, f"{m}: {p}")
        total_pct = sum(pcts, Decimal(0))
        if abs(total_pct - HUNDRED) > PERCENT_EPSILON:
            raise InvalidSplit(InvalidSplit.PERCENTAGE_MISMATCH, f"percentages sum to {total_pct}")
        amounts = [
            int((amount * p / HUNDRED).quantize(Decimal(1), rounding=ROUND_HALF_UP))
            for p in pcts
        ]
        amounts = _absorb_leftover(amounts, amount, pcts)
        return tuple(
            Split(member=m, amount=a, percentage=p)
            for m, a, p in zip(members, amounts, pcts)
        )

    # fixed
    amounts = []
    for m in members:
        a = shares.get(m, 0)
        if not _is_int(a):
            raise TypeError(f"fixed share for {m} must be an int in minor units, got {a!r}")
        if a < 0:
            raise InvalidSplit(InvalidSplit.NEGATIVE_SHARE, f"{m}: {a}")
        amounts.append(a)
    if sum(amounts) != amount:
        raise InvalidSplit(
            InvalidSplit.AMOUNT_MISMATCH,
            f"shares sum to {sum(amounts)}, expense is {amount}",
        )
    return tuple(Split(member=m, amount=a) for m, a in zip(members, amounts))


def inconsistent_expenses(expenses: Iterable[Expense]) -> List[str]:
    """Ids of expenses whose split amounts do not add up to the expense amount"""
    return [e.id for e in expenses if sum(s.amount for s in e.splits) != e.amount]


def compute_balances(
    group_members: Iterable[Member],
    expenses: Iterable[Expense],
) -> Dict[Member, int]:
    """
    Net balance per member: positive -> is owed money; negative -> owes money.

    The payer is credited the expense amount and each split member is debited
    what is still outstanding on their split. Whatever has been repaid on a
    split has already reached the payer, so it comes off the payer's credit.
    Members who have left the group keep their balance.
    """
    expenses = list(expenses)
    balances: Dict[Member, int] = {m: 0 for m in group_members}

    for e in expenses:
        balances[e.payer] = balances.get(e.payer, 0) + e.amount
        for s in e.splits:
            balances[s.member] = balances.get(s.member, 0) - s.outstanding
            balances[e.payer] -= s.settled

    total = sum(balances.values())
    if total != 0:
        bad = inconsistent_expenses(expenses)
        logger.warning("Balance conservation violated: total=%d, expenses=%s", total, bad)
        raise BalanceInconsistency(total, bad)

    logger.debug("Computed balances for %d members over %d expenses", len(balances), len(expenses))
    return balances


def validate_balances(balances: Mapping[Member, int]) -> Tuple[bool, Optional[str]]:
    """Check the conservation law without raising"""
    total = sum(balances.values())
    if total != 0:
        return False, f"Balances do not sum to zero. Total net balance: {total}"
    return True, None


def compute_transfers(balances: Mapping[Member, int]) -> List[SettlementTransfer]:
    """
    Compute transfers to settle debts.
    Greedy settlement: the largest debtor pays the largest creditor, then both
    are re-ranked. net>0 creditor; net<0 debtor. Ties go to the smaller
    member id. Not guaranteed to use the fewest possible transfers.
    """
    creditors: List[Tuple[int, Member]] = []
    debtors: List[Tuple[int, Member]] = []
    for member, v in balances.items():
        if not _is_int(v):
            raise TypeError(f"balance for {member} must be an int in minor units, got {v!r}")
        if v > 0:
            creditors.append((-v, member))
        elif v < 0:
            debtors.append((v, member))
    heapq.heapify(creditors)
    heapq.heapify(debtors)

    transfers: List[SettlementTransfer] = []
    while creditors and debtors:
        neg_credit, cname = heapq.heappop(creditors)
        neg_debt, dname = heapq.heappop(debtors)
        x = min(-neg_credit, -neg_debt)
        transfers.append(SettlementTransfer(dname, cname, x))
        if -neg_credit > x:
            heapq.heappush(creditors, (neg_credit + x, cname))
        if -neg_debt > x:
            heapq.heappush(debtors, (neg_debt + x, dname))

    if creditors or debtors:
        remaining = {m: -v for v, m in creditors}
        remaining.update({m: v for v, m in debtors})
        logger.warning("Settlement left balances unsettled: %s", remaining)
        raise UnsettleableInput(remaining)

    logger.debug("Planned %d transfers", len(transfers))
    return transfers


def filter_expenses_by_date(
    expenses: Iterable[Expense],
    start: Optional[date],
    end: Optional[date],
) -> List[Expense]:
    """Filter expenses by creation date range (inclusive)"""
    out = []
    for e in expenses:
        ed = parse_date(e.created_at)
        if start and ed < start:
            continue
        if end and ed > end:
            continue
        out.append(e)
    return out


def compute_summary(
    members: Iterable[Member],
    expenses: Iterable[Expense],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> Dict[Member, dict]:
    """
    Compute summary statistics for each member.
    Returns dict mapping member -> {paid, owed, settled, received, net}
    """
    exps = filter_expenses_by_date(expenses, start, end)
    people = list(members)
    for e in exps:
        for m in [e.payer] + [s.member for s in e.splits]:
            if m not in people:
                people.append(m)

    paid = {p: 0 for p in people}
    owed = {p: 0 for p in people}
    settled = {p: 0 for p in people}
    received = {p: 0 for p in people}

    for e in exps:
        paid[e.payer] += e.amount
        for s in e.splits:
            owed[s.member] += s.amount
            settled[s.member] += s.settled
            received[e.payer] += s.settled

    return {
        p: {
            "paid": paid[p],
            "owed": owed[p],
            "settled": settled[p],
            "received": received[p],
            "net": paid[p] - owed[p] + settled[p] - received[p],
        } for p in people
    }


def group_totals(members: Iterable[Member], expenses: Iterable[Expense]) -> dict:
    """Group-wide totals: spent, repaid between members, still outstanding"""
    expenses = list(expenses)
    balances = compute_balances(members, expenses)
    total_settled = sum(
        s.settled for e in expenses for s in e.splits if s.member != e.payer
    )
    return {
        "total_expenses": sum(e.amount for e in expenses),
        "total_settled": total_settled,
        "total_outstanding": sum(v for v in balances.values() if v > 0),
        "member_count": len(balances),
    }
