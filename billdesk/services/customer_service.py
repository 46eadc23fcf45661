from __future__ import annotations

from dataclasses import asdict, dataclass

from sqlalchemy import func, select

from billdesk.errors import ValidationError
from billdesk.models import Bill
from billdesk.services.d1_client import D1Client

MIN_QUERY_LENGTH = 3
MAX_RESULTS = 10


@dataclass(frozen=True)
class CustomerProfile:
    customer_name: str
    customer_code: int | None
    customer_phone: str | None
    customer_email: str | None
    customer_address: str | None
    customer_gst_number: str | None

    def as_dict(self) -> dict:
        return asdict(self)


def search_customers(client: D1Client, query: str | None) -> list[CustomerProfile]:
    term = (query or '').strip()
    if len(term) < MIN_QUERY_LENGTH:
        raise ValidationError(
            f'A search query of at least {MIN_QUERY_LENGTH} characters is required.',
            details={'field': 'q', 'min_length': MIN_QUERY_LENGTH},
        )

    # Highest bill id per matching name is that customer's most recent bill.
    recent_bills = (
        select(Bill.customer_name, func.max(Bill.id).label('max_id'))
        .where(Bill.customer_name.icontains(term, autoescape=True))
        .group_by(Bill.customer_name)
        .subquery('recent_bills')
    )
    stmt = (
        select(
            Bill.customer_name,
            Bill.customer_code,
            Bill.customer_phone,
            Bill.customer_email,
            Bill.customer_address,
            Bill.customer_gst_number,
        )
        .join(recent_bills, Bill.id == recent_bills.c.max_id)
        .order_by(Bill.customer_name.asc())
        .limit(MAX_RESULTS)
    )
    return [
        CustomerProfile(
            customer_name=row['customer_name'],
            customer_code=row.get('customer_code'),
            customer_phone=row.get('customer_phone'),
            customer_email=row.get('customer_email'),
            customer_address=row.get('customer_address'),
            customer_gst_number=row.get('customer_gst_number'),
        )
        for row in client.run(stmt).results
    ]
