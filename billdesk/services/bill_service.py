from __future__ import annotations

import logging

from sqlalchemy import Text, and_, cast, delete, func, insert, or_, select, update

from billdesk.config import settings
from billdesk.errors import BackendError, BatchError, ConflictError, DuplicateBillNumber, NotFoundError, ValidationError
from billdesk.models import BILL_ITEM_COLUMNS, Bill, BillItem, PaymentMethod, PaymentStatus
from billdesk.services.bill_number_service import next_bill_number
from billdesk.services.bill_payload import (
    TOTAL_FIELDS,
    check_totals,
    enum_value,
    iso_date,
    missing_required_fields,
    normalize_header,
    normalize_items,
)
from billdesk.services.d1_client import D1Client
from billdesk.services.write_saga import WriteSaga

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _coerce_id(bill_id) -> int:
    try:
        value = int(bill_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError('Bill ID must be an integer', details={'field': 'billId'}) from exc
    if value <= 0:
        raise ValidationError('Bill ID must be positive', details={'field': 'billId'})
    return value


def _fetch_header(client: D1Client, bill_id: int) -> dict | None:
    return client.run(select(Bill).where(Bill.id == bill_id)).first()


def _fetch_header_by_number(client: D1Client, bill_number: str) -> dict | None:
    return client.run(
        select(Bill).where(Bill.bill_number == bill_number).order_by(Bill.id.desc()).limit(1)
    ).first()


def _fetch_items(client: D1Client, bill_id: int) -> list[dict]:
    return client.run(
        select(BillItem).where(BillItem.bill_id == bill_id).order_by(BillItem.sr_no.asc(), BillItem.id.asc())
    ).results


def _compose(client: D1Client, header: dict) -> dict:
    return {**header, 'items': _fetch_items(client, header['id'])}


def _item_inserts(bill_id: int, rows: list[dict]) -> list:
    return [insert(BillItem).values(bill_id=bill_id, **row) for row in rows]


def _restore_items(client: D1Client, bill_id: int, previous: list[dict]) -> None:
    statements = [delete(BillItem).where(BillItem.bill_id == bill_id)]
    for row in previous:
        values = {name: row.get(name) for name in BILL_ITEM_COLUMNS}
        statements.append(insert(BillItem).values(id=row['id'], bill_id=bill_id, **values))
    client.batch(statements)


def _delete_bill_rows(client: D1Client, bill_id: int) -> None:
    client.batch(
        [
            delete(BillItem).where(BillItem.bill_id == bill_id),
            delete(Bill).where(Bill.id == bill_id),
        ]
    )


def _as_conflict(exc: Exception) -> ConflictError | None:
    cause = exc.cause if isinstance(exc, BatchError) else exc
    if isinstance(cause, BackendError) and cause.is_unique_violation:
        return ConflictError('A database constraint was violated', details={'reason': cause.message})
    return None


def bill_number_exists(client: D1Client, bill_number: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(Bill.id).where(Bill.bill_number == bill_number)
    if exclude_id is not None:
        stmt = stmt.where(Bill.id != exclude_id)
    return client.run(stmt.limit(1)).first() is not None


def get_bill(client: D1Client, bill_id) -> dict:
    bill_id = _coerce_id(bill_id)
    header = _fetch_header(client, bill_id)
    if header is None:
        raise NotFoundError('Bill not found', details={'billId': bill_id})
    return _compose(client, header)


def get_bill_by_number(client: D1Client, bill_number: str) -> dict:
    number = (bill_number or '').strip()
    if not number:
        raise ValidationError('Bill number is required', details={'field': 'bill_number'})
    header = _fetch_header_by_number(client, number)
    if header is None:
        raise NotFoundError('Bill not found', details={'bill_number': number})
    return _compose(client, header)


def list_bills(
    client: D1Client,
    *,
    search: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    status: str | None = None,
    payment: str | None = None,
    page: int = 1,
    limit: int = 10,
) -> dict:
    if page < 1:
        raise ValidationError('page must be at least 1', details={'field': 'page'})
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f'limit must be between 1 and {MAX_PAGE_SIZE}', details={'field': 'limit'})

    conditions = []
    term = (search or '').strip()
    if term:
        conditions.append(
            or_(
                Bill.customer_name.icontains(term, autoescape=True),
                Bill.bill_number.icontains(term, autoescape=True),
                cast(Bill.id, Text).contains(term, autoescape=True),
            )
        )
    if start_date:
        conditions.append(func.date(Bill.invoice_date) >= iso_date(start_date, 'startDate'))
    if end_date:
        conditions.append(func.date(Bill.invoice_date) <= iso_date(end_date, 'endDate'))
    if status:
        conditions.append(Bill.payment_status == enum_value(status, PaymentStatus, 'status'))
    if payment:
        conditions.append(Bill.payment_method == enum_value(payment, PaymentMethod, 'payment'))

    count_query = select(func.count().label('total')).select_from(Bill)
    query = select(Bill).order_by(Bill.created_at.desc(), Bill.id.desc()).limit(limit).offset((page - 1) * limit)
    if conditions:
        count_query = count_query.where(and_(*conditions))
        query = query.where(and_(*conditions))

    total = int((client.run(count_query).first() or {}).get('total') or 0)
    bills = [_compose(client, header) for header in client.run(query).results]
    return {'bills': bills, 'page': page, 'limit': limit, 'total': total}


def create_bill(
    client: D1Client,
    payload: dict,
    *,
    enforce_unique_number: bool | None = None,
    autogenerate_number: bool | None = None,
) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError('Bill payload must be a JSON object')
    missing = missing_required_fields(payload)
    if missing:
        raise ValidationError('Missing required fields', details={'missing_fields': missing})
    items = payload.get('items')
    if not isinstance(items, list) or not items:
        raise ValidationError('At least one item is required', details={'field': 'items'})

    header = normalize_header(payload)
    check_totals(header)
    item_rows = normalize_items(items)

    if enforce_unique_number is None:
        enforce_unique_number = settings.bill_number_unique
    if autogenerate_number is None:
        autogenerate_number = settings.bill_number_autogenerate

    if header.get('bill_number'):
        if enforce_unique_number and bill_number_exists(client, header['bill_number']):
            raise DuplicateBillNumber(header['bill_number'])
    elif autogenerate_number:
        header['bill_number'] = next_bill_number(client)

    def insert_header() -> int:
        bill_id = client.run(insert(Bill).values(**header)).last_row_id
        if not bill_id:
            raise BackendError('Failed to get bill ID after insertion')
        return bill_id

    saga = WriteSaga(f"create bill {header.get('bill_number') or '(unnumbered)'}")
    try:
        bill_id = saga.step('insert header', insert_header, compensate=lambda new_id: _delete_bill_rows(client, new_id))
        saga.step('insert items', lambda: client.batch(_item_inserts(bill_id, item_rows)))
    except (BackendError, BatchError) as exc:
        conflict = _as_conflict(exc)
        if conflict is not None:
            raise conflict from exc
        raise

    logger.info('Created bill %s (number %s) with %d items', bill_id, header.get('bill_number'), len(item_rows))
    return {'billId': bill_id, 'billNumber': header.get('bill_number'), 'itemsCount': len(item_rows)}


def update_bill(
    client: D1Client,
    bill_id,
    payload: dict,
    *,
    enforce_unique_number: bool | None = None,
) -> dict:
    bill_id = _coerce_id(bill_id)
    if not isinstance(payload, dict):
        raise ValidationError('Bill payload must be a JSON object')
    changes = normalize_header(payload, partial=True)
    item_rows = normalize_items(payload['items'], skip_blank=True) if payload.get('items') is not None else None
    if item_rows is not None and not item_rows:
        raise ValidationError('At least one item is required', details={'field': 'items'})
    if not changes and item_rows is None:
        raise ValidationError('No fields to update')

    existing = _fetch_header(client, bill_id)
    if existing is None:
        raise NotFoundError('Bill not found', details={'billId': bill_id})

    if any(name in changes for name in TOTAL_FIELDS):
        check_totals({**existing, **changes})

    if enforce_unique_number is None:
        enforce_unique_number = settings.bill_number_unique
    new_number = changes.get('bill_number')
    if (
        enforce_unique_number
        and new_number
        and new_number != existing.get('bill_number')
        and bill_number_exists(client, new_number, exclude_id=bill_id)
    ):
        raise DuplicateBillNumber(new_number)

    previous = {name: existing.get(name) for name in changes}
    previous['updated_at'] = existing.get('updated_at')
    old_items = _fetch_items(client, bill_id) if item_rows is not None else []

    saga = WriteSaga(f'update bill {bill_id}')
    try:
        saga.step(
            'update header',
            lambda: client.run(
                update(Bill).where(Bill.id == bill_id).values(**changes, updated_at=func.current_timestamp())
            ),
            compensate=lambda _: client.run(update(Bill).where(Bill.id == bill_id).values(**previous)),
        )
        if item_rows is not None:
            saga.step(
                'delete items',
                lambda: client.run(delete(BillItem).where(BillItem.bill_id == bill_id)),
                compensate=lambda _: _restore_items(client, bill_id, old_items),
            )
            saga.step('insert items', lambda: client.batch(_item_inserts(bill_id, item_rows)))
    except (BackendError, BatchError) as exc:
        conflict = _as_conflict(exc)
        if conflict is not None:
            raise conflict from exc
        raise

    logger.info(
        'Updated bill %s (fields: %s, items replaced: %s)',
        bill_id,
        ', '.join(sorted(changes)) or '-',
        'no' if item_rows is None else len(item_rows),
    )
    return get_bill(client, bill_id)


def _delete_existing(client: D1Client, header: dict) -> dict:
    bill_id = header['id']
    old_items = _fetch_items(client, bill_id)

    # Items go first so a failed header delete never leaves items pointing nowhere.
    saga = WriteSaga(f'delete bill {bill_id}')
    saga.step(
        'delete items',
        lambda: client.run(delete(BillItem).where(BillItem.bill_id == bill_id)),
        compensate=lambda _: _restore_items(client, bill_id, old_items),
    )
    saga.step('delete header', lambda: client.run(delete(Bill).where(Bill.id == bill_id)))

    logger.info('Deleted bill %s with %d items', bill_id, len(old_items))
    return {'billId': bill_id, 'billNumber': header.get('bill_number'), 'itemsDeleted': len(old_items)}


def delete_bill(client: D1Client, bill_id) -> dict:
    bill_id = _coerce_id(bill_id)
    header = _fetch_header(client, bill_id)
    if header is None:
        raise NotFoundError('Bill not found', details={'billId': bill_id})
    return _delete_existing(client, header)


def delete_bill_by_number(client: D1Client, bill_number: str) -> dict:
    number = (bill_number or '').strip()
    if not number:
        raise ValidationError('Bill number is required', details={'field': 'bill_number'})
    header = _fetch_header_by_number(client, number)
    if header is None:
        raise NotFoundError('Bill not found', details={'bill_number': number})
    return _delete_existing(client, header)
