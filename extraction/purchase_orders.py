"""Purchase-order export parsing.

Purchase orders only feed the committed-spend figure of the report; they are
never matched against locations.
"""

import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from models.canonical import PurchaseOrder, parse_amount


EPISODE_PATTERNS = [
    re.compile(r"EP\s*(\d{3})", re.IGNORECASE),
    re.compile(r"Episode\s*(\d{3})", re.IGNORECASE),
    re.compile(r"\b(10[1-6])\b"),
]

PO_CATEGORY_KEYWORDS = {
    "Security": ["SECURITY", "GUARD"],
    "Police": ["POLICE", "SHERIFF", "LAPD", "CHP"],
    "Fire": ["FIRE", "EMT"],
    "Permits": ["PERMIT", "FILM LA"],
    "Locations": ["LOCATION", "SITE", "VENUE"],
    "Catering": ["CATERING", "CRAFT", "FOOD"],
    "Equipment": ["EQUIPMENT", "RENTAL", "GRIP", "ELECTRIC"],
}

# Statuses that no longer represent an open commitment
CLOSED_PO_STATUSES = {"closed", "paid", "cancelled", "canceled", "void", "voided", "rejected"}

EXCEL_EPOCH = date(1899, 12, 30)


def infer_episode(description: str) -> Optional[str]:
    """Infer an episode number from a PO description ("EP101", "Episode 102")."""
    if not description:
        return None
    for pattern in EPISODE_PATTERNS:
        m = pattern.search(description)
        if m:
            return m.group(1)
    return None


def infer_po_category(description: str, department: str = "") -> str:
    text = f"{description} {department}".upper()
    for category, keywords in PO_CATEGORY_KEYWORDS.items():
        if any(kw in text for kw in keywords):
            return category
    return "Other"


def _format_date(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        # Spreadsheet serial day number
        return (EXCEL_EPOCH + timedelta(days=int(value))).isoformat()
    return str(value).strip()


def parse_purchase_order_rows(rows: Sequence[Sequence[Any]]) -> List[PurchaseOrder]:
    """Parse purchase-order rows; the first row holds the headers."""
    if not rows:
        return []

    headers = [str(h or "").lower().strip() for h in rows[0]]

    def find(predicate) -> int:
        return next((i for i, h in enumerate(headers) if predicate(h)), -1)

    po_col = find(lambda h: "po" in h and ("num" in h or "#" in h))
    vendor_col = find(lambda h: "vendor" in h or "payee" in h)
    desc_col = find(lambda h: "desc" in h or "memo" in h)
    amount_col = find(lambda h: "amount" in h or "total" in h)
    status_col = find(lambda h: "status" in h)
    date_col = find(lambda h: "date" in h)
    dept_col = find(lambda h: "dept" in h or "department" in h)
    episode_col = find(lambda h: "episode" in h or h in ("ep", "epi"))

    def cell(row: Sequence[Any], index: int) -> Any:
        return row[index] if 0 <= index < len(row) else None

    orders: List[PurchaseOrder] = []
    for row in rows[1:]:
        if not row:
            continue
        po_number = str(cell(row, po_col) or "").strip()
        vendor = str(cell(row, vendor_col) or "").strip()
        description = str(cell(row, desc_col) or "").strip()
        department = str(cell(row, dept_col) or "").strip()
        amount = parse_amount(cell(row, amount_col)) or Decimal("0")
        if not (po_number or vendor or amount):
            continue
        episode = str(cell(row, episode_col) or "").strip() or infer_episode(description)
        orders.append(PurchaseOrder(
            po_number=po_number,
            vendor=vendor,
            description=description,
            amount=amount,
            status=str(cell(row, status_col) or "").strip() or "unknown",
            po_date=_format_date(cell(row, date_col)),
            department=department or None,
            episode=episode,
            category=infer_po_category(description, department),
        ))
    return orders


def is_open(order: PurchaseOrder) -> bool:
    return order.status.strip().lower() not in CLOSED_PO_STATUSES


def summarize_purchase_orders(orders: List[PurchaseOrder]) -> Dict[str, Any]:
    """Totals overall, committed (open) and by status."""
    by_status: Dict[str, Decimal] = {}
    for order in orders:
        key = order.status or "unknown"
        by_status[key] = by_status.get(key, Decimal("0")) + order.amount
    return {
        "count": len(orders),
        "total_amount": sum((o.amount for o in orders), Decimal("0")),
        "committed_amount": sum((o.amount for o in orders if is_open(o)), Decimal("0")),
        "by_status": by_status,
    }
