from __future__ import annotations

from sqlalchemy import select

from billdesk.models import Bill
from billdesk.services.d1_client import D1Client


def next_bill_number(client: D1Client) -> str:
    row = client.run(select(Bill.bill_number).order_by(Bill.id.desc()).limit(1)).first()
    if not row:
        return '1'
    raw = str(row.get('bill_number') or '').strip()
    try:
        return str(int(raw) + 1)
    except ValueError:
        # Non-numeric predecessor restarts at "1" and may collide with an issued number.
        return '1'
