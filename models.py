"""
Data models for settle-up
"""
from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

Member = str


class SplitMethod(str, Enum):
    """How an expense amount is divided among its participants"""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    FIXED = "fixed"


@dataclass
class Group:
    """Members sharing expenses in one currency"""
    name: str
    members: List[Member]  # membership order decides who absorbs rounding leftovers
    currency: str = "USD"
    default_split_method: SplitMethod = SplitMethod.EQUAL


@dataclass(frozen=True)
class Split:
    """One member's allocated share of an expense, in minor units"""
    member: Member
    amount: int
    percentage: Optional[Decimal] = None
    is_paid: bool = False
    paid_amount: int = 0

    @property
    def outstanding(self) -> int:
        if self.is_paid:
            return 0
        return self.amount - self.paid_amount

    @property
    def settled(self) -> int:
        return self.amount - self.outstanding


@dataclass(frozen=True)
class Expense:
    """Single expense fronted by one payer"""
    id: str
    amount: int  # minor units
    payer: Member
    created_at: str  # ISO-8601
    splits: Tuple[Split, ...]
    description: str = ""


class SettlementTransfer(NamedTuple):
    """Suggested payment from a debtor to a creditor"""
    from_member: Member
    to_member: Member
    amount: int


@dataclass
class Ledger:
    """Group together with its recorded expenses"""
    group: Group
    expenses: List[Expense] = field(default_factory=list)
    version: int = 1

    @property
    def members(self) -> List[Member]:
        return self.group.members
