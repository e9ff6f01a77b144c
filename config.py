"""
Configuration and data loading/saving for settle-up
"""
from __future__ import annotations
import json
import logging
import os
from decimal import Decimal
from typing import Optional

from models import Expense, Group, Ledger, Split, SplitMethod
from utils import app_dir

logger = logging.getLogger(__name__)

LEDGER_FORMAT_VERSION = 1
DEFAULT_CURRENCY = "USD"


def load_group_settings(path: str) -> dict:
    """Load group defaults (name, members, currency, split method) from JSON file"""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a JSON object")
    return data


def get_default_ledger(settings_path: Optional[str] = None) -> Ledger:
    """Create an empty ledger from group.json in the app directory"""
    path = settings_path or os.path.join(app_dir(), "group.json")
    settings = load_group_settings(path)

    group = Group(
        name=settings.get("name", "My group"),
        members=list(settings.get("members", [])),
        currency=settings.get("currency", DEFAULT_CURRENCY).upper(),
        default_split_method=SplitMethod(settings.get("default_split_method", SplitMethod.EQUAL.value)),
    )
    return Ledger(group=group, expenses=[])


def _split_to_dict(s: Split) -> dict:
    return {
        "member": s.member,
        "amount": s.amount,
        "percentage": None if s.percentage is None else str(s.percentage),
        "is_paid": s.is_paid,
        "paid_amount": s.paid_amount,
    }


def _int_field(d: dict, key: str, default=None) -> int:
    """Integer minor units; floats and strings are rejected rather than truncated"""
    v = d[key] if default is None else d.get(key, default)
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValueError(f"{key} must be an integer in minor units, got {v!r}")
    return v


def _split_from_dict(d: dict) -> Split:
    amount = _int_field(d, "amount")
    paid = _int_field(d, "paid_amount", 0)
    if not 0 <= paid <= amount:
        raise ValueError(f"paid_amount {paid} out of range for split of {amount}")
    pct = d.get("percentage")
    return Split(
        member=d["member"],
        amount=amount,
        percentage=None if pct is None else Decimal(str(pct)),
        is_paid=bool(d.get("is_paid", False)),
        paid_amount=paid,
    )


def ledger_to_dict(ledger: Ledger) -> dict:
    """Convert Ledger object to dictionary for JSON serialization"""
    g = ledger.group
    return {
        "format": LEDGER_FORMAT_VERSION,
        "version": ledger.version,
        "group": {
            "name": g.name,
            "members": list(g.members),
            "currency": g.currency,
            "default_split_method": SplitMethod(g.default_split_method).value,
        },
        "expenses": [
            {
                "id": e.id,
                "amount": e.amount,
                "payer": e.payer,
                "created_at": e.created_at,
                "description": e.description,
                "splits": [_split_to_dict(s) for s in e.splits],
            } for e in ledger.expenses
        ],
    }


def dict_to_ledger(d: dict) -> Ledger:
    """Convert dictionary from JSON to Ledger object"""
    if not isinstance(d, dict):
        raise ValueError(f"ledger document must be a JSON object, got {type(d).__name__}")
    fmt = d.get("format", LEDGER_FORMAT_VERSION)
    if fmt != LEDGER_FORMAT_VERSION:
        raise ValueError(f"unsupported ledger format {fmt}")
    try:
        g = d["group"]
        group = Group(
            name=g.get("name", ""),
            members=list(g.get("members", [])),
            currency=g.get("currency", DEFAULT_CURRENCY),
            default_split_method=SplitMethod(g.get("default_split_method", SplitMethod.EQUAL.value)),
        )
        exps = [
            Expense(
                id=e["id"],
                amount=_int_field(e, "amount"),
                payer=e["payer"],
                created_at=e["created_at"],
                splits=tuple(_split_from_dict(s) for s in e.get("splits", [])),
                description=e.get("description", ""),
            ) for e in d.get("expenses", [])
        ]
    except (KeyError, TypeError, AttributeError) as ex:
        raise ValueError(f"malformed ledger document: {ex}") from ex

    return Ledger(group=group, expenses=exps, version=int(d.get("version", 1)))


def load_ledger(path: str) -> Ledger:
    with open(path, "r", encoding="utf-8") as f:
        ledger = dict_to_ledger(json.load(f))
    logger.debug("Loaded ledger %s with %d expenses", path, len(ledger.expenses))
    return ledger


def save_ledger(ledger: Ledger, path: str) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(ledger_to_dict(ledger), f, ensure_ascii=False, indent=2)
    logger.debug("Saved ledger %s (version %d)", path, ledger.version)
