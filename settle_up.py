"""
settle-up
- Record who paid for what and how each expense is split within a group.
- Show net balances and the payments that settle everyone up.
- Export an Excel report (expenses, balances, transfers) or CSV.

Run:
  python settle_up.py init Trip --members Ann Bob Cid
  python settle_up.py add 90.00 Ann
  python settle_up.py settle

Dependencies:
  pip install openpyxl
"""
from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import List, Optional

from config import get_default_ledger, load_ledger, save_ledger
from computations import compute_summary
from csv_handler import export_expenses_to_csv, import_expenses_from_csv
from errors import SettleUpError
from excel_export import export_excel
from models import SplitMethod
from operations import (
    add_expense,
    add_member,
    create_ledger,
    delete_expense,
    get_expense,
    group_balances,
    import_expenses,
    record_payment,
    remove_member,
    resplit_method,
    settle_expense,
    settlement_plan,
    update_expense,
)
from utils import app_dir, format_minor_units, parse_date, to_minor_units

logger = logging.getLogger("settle_up")


def _parse_shares(pairs: List[str], method: str) -> dict:
    """NAME=VALUE pairs; fixed values are major units, percentages as given"""
    shares = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValueError(f"share must look like NAME=VALUE, got {pair!r}")
        name, value = pair.split("=", 1)
        shares[name.strip()] = to_minor_units(value) if method == SplitMethod.FIXED else value.strip()
    return shares


def _open(path: str):
    if not os.path.exists(path):
        raise ValueError(f"no ledger at {path}; run 'init' first")
    return load_ledger(path)


def cmd_init(args) -> None:
    if os.path.exists(args.ledger) and not args.force:
        raise ValueError(f"{args.ledger} already exists (use --force to overwrite)")
    # explicit options win over group.json defaults
    defaults = get_default_ledger().group
    ledger = create_ledger(
        args.name,
        args.members or defaults.members,
        args.currency or defaults.currency,
        args.method or defaults.default_split_method,
    )
    save_ledger(ledger, args.ledger)
    print(f"Created ledger '{args.name}' at {args.ledger}")


def cmd_member(args) -> None:
    ledger = _open(args.ledger)
    if args.remove:
        remove_member(ledger, args.name)
    else:
        add_member(ledger, args.name)
    save_ledger(ledger, args.ledger)


def cmd_add(args) -> None:
    ledger = _open(args.ledger)
    method = args.method or ledger.group.default_split_method
    expense = add_expense(
        ledger,
        amount=to_minor_units(args.amount),
        payer=args.payer,
        participants=args.split or None,
        method=method,
        shares=_parse_shares(args.share, method),
        description=args.description,
    )
    save_ledger(ledger, args.ledger)
    print(expense.id)


def cmd_pay(args) -> None:
    ledger = _open(args.ledger)
    record_payment(ledger, args.expense_id, args.member, to_minor_units(args.amount))
    save_ledger(ledger, args.ledger)


def cmd_edit(args) -> None:
    ledger = _open(args.ledger)
    method = args.method
    if args.share and method is None:
        method = resplit_method(ledger, get_expense(ledger, args.expense_id))
    update_expense(
        ledger,
        args.expense_id,
        amount=None if args.amount is None else to_minor_units(args.amount),
        payer=args.payer,
        participants=args.split or None,
        method=method,
        shares=_parse_shares(args.share, method) if args.share else None,
        description=args.description,
    )
    save_ledger(ledger, args.ledger)


def cmd_delete(args) -> None:
    ledger = _open(args.ledger)
    delete_expense(ledger, args.expense_id)
    save_ledger(ledger, args.ledger)


def cmd_settle_expense(args) -> None:
    ledger = _open(args.ledger)
    settle_expense(ledger, args.expense_id)
    save_ledger(ledger, args.ledger)


def cmd_list(args) -> None:
    ledger = _open(args.ledger)
    for e in ledger.expenses:
        outstanding = sum(s.outstanding for s in e.splits if s.member != e.payer)
        print(f"{e.id}  {e.created_at[:10]}  {e.payer:<12} {format_minor_units(e.amount):>10}"
              f"  open {format_minor_units(outstanding):>10}  {e.description}")


def cmd_balances(args) -> None:
    ledger = _open(args.ledger)
    cur = ledger.group.currency
    summary = compute_summary(ledger.members, ledger.expenses)
    for member, net in group_balances(ledger).items():
        s = summary[member]
        print(f"{member:<16} {format_minor_units(net):>12} {cur}"
              f"   paid {format_minor_units(s['paid'])}, owed {format_minor_units(s['owed'])}")


def cmd_settle(args) -> None:
    ledger = _open(args.ledger)
    transfers = settlement_plan(ledger)
    if not transfers:
        print("All settled up.")
    for t in transfers:
        print(f"{t.from_member} pays {t.to_member} {format_minor_units(t.amount)} {ledger.group.currency}")


def cmd_export_excel(args) -> None:
    ledger = _open(args.ledger)
    start = parse_date(args.start) if args.start else None
    end = parse_date(args.end) if args.end else None
    export_excel(ledger, args.path, start, end)
    print(f"Exported: {args.path}")


def cmd_export_csv(args) -> None:
    ledger = _open(args.ledger)
    export_expenses_to_csv(ledger.expenses, args.path)
    print(f"Exported {len(ledger.expenses)} expenses to: {args.path}")


def cmd_import_csv(args) -> None:
    ledger = _open(args.ledger)
    added = import_expenses(ledger, import_expenses_from_csv(args.path), replace_existing=args.replace)
    save_ledger(ledger, args.ledger)
    print(f"Imported {added} expenses.")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="settle-up", description="Split group expenses and settle up.")
    p.add_argument("--ledger", default=None, help="ledger JSON file (default: ledger.json in the app directory)")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    sp = sub.add_parser("init", help="create a new ledger")
    sp.add_argument("name")
    sp.add_argument("--members", nargs="*", default=[])
    sp.add_argument("--currency", help="default: USD or group.json")
    sp.add_argument("--method", choices=[m.value for m in SplitMethod], help="default: equal or group.json")
    sp.add_argument("--force", action="store_true")
    sp.set_defaults(func=cmd_init)

    sp = sub.add_parser("member", help="add or remove a member")
    sp.add_argument("name")
    sp.add_argument("--remove", action="store_true")
    sp.set_defaults(func=cmd_member)

    sp = sub.add_parser("add", help="record an expense")
    sp.add_argument("amount", help="amount in major units, e.g. 12.50")
    sp.add_argument("payer")
    sp.add_argument("--split", nargs="*", help="participants (default: everyone)")
    sp.add_argument("--method", choices=[m.value for m in SplitMethod])
    sp.add_argument("--share", action="append", default=[], metavar="NAME=VALUE")
    sp.add_argument("--description", default="")
    sp.set_defaults(func=cmd_add)

    sp = sub.add_parser("pay", help="record a payment against a split")
    sp.add_argument("expense_id")
    sp.add_argument("member")
    sp.add_argument("amount")
    sp.set_defaults(func=cmd_pay)

    sp = sub.add_parser("edit", help="change an expense")
    sp.add_argument("expense_id")
    sp.add_argument("--amount", help="new amount in major units")
    sp.add_argument("--payer")
    sp.add_argument("--split", nargs="*", help="new participants")
    sp.add_argument("--method", choices=[m.value for m in SplitMethod])
    sp.add_argument("--share", action="append", default=[], metavar="NAME=VALUE")
    sp.add_argument("--description")
    sp.set_defaults(func=cmd_edit)

    sp = sub.add_parser("delete", help="remove an expense")
    sp.add_argument("expense_id")
    sp.set_defaults(func=cmd_delete)

    sp = sub.add_parser("settle-expense", help="mark every share of an expense paid")
    sp.add_argument("expense_id")
    sp.set_defaults(func=cmd_settle_expense)

    sp = sub.add_parser("list", help="list expenses")
    sp.set_defaults(func=cmd_list)

    sp = sub.add_parser("balances", help="show net balances")
    sp.set_defaults(func=cmd_balances)

    sp = sub.add_parser("settle", help="show suggested settlement payments")
    sp.set_defaults(func=cmd_settle)

    sp = sub.add_parser("export-excel", help="write an Excel report")
    sp.add_argument("path")
    sp.add_argument("--start", help="YYYY-MM-DD")
    sp.add_argument("--end", help="YYYY-MM-DD")
    sp.set_defaults(func=cmd_export_excel)

    sp = sub.add_parser("export-csv", help="write expenses to CSV")
    sp.add_argument("path")
    sp.set_defaults(func=cmd_export_csv)

    sp = sub.add_parser("import-csv", help="read expenses from CSV")
    sp.add_argument("path")
    sp.add_argument("--replace", action="store_true", help="replace instead of append")
    sp.set_defaults(func=cmd_import_csv)
    return p


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.ledger is None:
        args.ledger = os.path.join(app_dir(), "ledger.json")
    try:
        args.func(args)
    except (SettleUpError, ValueError, KeyError) as ex:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"error: {ex}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
