"""
Excel export functionality for settle-up
"""
from __future__ import annotations
from datetime import date
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from models import Ledger
from computations import (
    filter_expenses_by_date,
    compute_summary,
    compute_balances,
    compute_transfers,
)
from utils import minor_to_major, parse_date

MONEY_FORMAT = "0.00"


def _style_header(ws, row=1):
    """Apply header styling to worksheet row"""
    header_font = Font(bold=True, color="FFFFFF")
    fill = PatternFill("solid", fgColor="4F81BD")
    align = Alignment(horizontal="center", vertical="center")
    thin = Side(style="thin", color="A0A0A0")
    border = Border(left=thin, right=thin, top=thin, bottom=thin)
    for cell in ws[row]:
        cell.font = header_font
        cell.fill = fill
        cell.alignment = align
        cell.border = border


def _autosize_columns(ws, min_width=10, max_width=45):
    """Auto-size columns based on content"""
    for col in range(1, ws.max_column + 1):
        letter = get_column_letter(col)
        max_len = 0
        for cell in ws[letter]:
            v = cell.value
            if v is None:
                continue
            max_len = max(max_len, len(str(v)))
        ws.column_dimensions[letter].width = max(min_width, min(max_width, max_len + 2))


def _money_columns(ws, first_col, last_col, first_row=2):
    for r in range(first_row, ws.max_row + 1):
        for c in range(first_col, last_col + 1):
            ws.cell(r, c).number_format = MONEY_FORMAT


def export_excel(
    ledger: Ledger,
    filepath: str,
    start: Optional[date] = None,
    end: Optional[date] = None
) -> None:
    """
    Export ledger to Excel file with three sheets:
    - Expenses: one row per expense with each member's allocation
    - Balances: paid / owed / settled / received / net per member
    - Transfers: suggested payments that settle the group
    The date range only applies to the first two; transfers always settle
    the full history.
    """
    wb = Workbook()
    # remove default sheet
    wb.remove(wb.active)

    exps = filter_expenses_by_date(ledger.expenses, start, end)
    summary = compute_summary(ledger.members, exps)
    people = list(summary)

    # Expenses sheet
    ws = wb.create_sheet("Expenses")
    headers = ["date", "description", "payer", "amount"] + people + ["outstanding"]
    ws.append(headers)
    _style_header(ws, 1)
    ws.freeze_panes = "A2"

    for e in sorted(exps, key=lambda e: (e.created_at, e.id)):
        alloc = {s.member: s.amount for s in e.splits}
        outstanding = sum(s.outstanding for s in e.splits if s.member != e.payer)
        row = [parse_date(e.created_at).isoformat(), e.description, e.payer, minor_to_major(e.amount)]
        row += [minor_to_major(alloc.get(p, 0)) for p in people]
        row.append(minor_to_major(outstanding))
        ws.append(row)

    # Footer totals, using Excel formulas for transparency
    last_data_row = ws.max_row
    if last_data_row >= 2:
        ws.append(["TOTALS"] + [""] * (len(headers) - 1))
        trow = ws.max_row
        ws.cell(trow, 1).font = Font(bold=True)
        for col in range(4, len(headers) + 1):
            letter = get_column_letter(col)
            ws.cell(trow, col).value = f"=SUM({letter}2:{letter}{last_data_row})"
    _money_columns(ws, 4, len(headers))
    _autosize_columns(ws)

    # Balances sheet
    ws = wb.create_sheet("Balances")
    ws.append(["Member", "Paid", "Owed", "Settled", "Received", "Net"])
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    for p in people:
        s = summary[p]
        ws.append([p] + [minor_to_major(s[k]) for k in ("paid", "owed", "settled", "received", "net")])
    _money_columns(ws, 2, 6)
    _autosize_columns(ws)

    # Transfers sheet
    ws = wb.create_sheet("Transfers")
    ws.append(["From (Debtor)", "To (Creditor)", f"Amount ({ledger.group.currency})"])
    _style_header(ws, 1)
    ws.freeze_panes = "A2"
    transfers = compute_transfers(compute_balances(ledger.members, ledger.expenses))
    for a, b, amt in transfers:
        ws.append([a, b, minor_to_major(amt)])
    _money_columns(ws, 3, 3)
    _autosize_columns(ws)

    wb.save(filepath)
