from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from billdesk.db import get_db
from billdesk.errors import ValidationError
from billdesk.services.bill_number_service import next_bill_number
from billdesk.services.bill_service import (
    create_bill,
    delete_bill,
    delete_bill_by_number,
    get_bill,
    get_bill_by_number,
    list_bills,
    update_bill,
)
from billdesk.services.d1_client import D1Client

router = APIRouter(prefix='/api/bills', tags=['bills'])


@router.get('')
def bills_index(
    action: str = Query('list'),
    bill_id: int | None = Query(None, alias='billId'),
    search: str | None = Query(None),
    start_date: str | None = Query(None, alias='startDate'),
    end_date: str | None = Query(None, alias='endDate'),
    payment_status: str | None = Query(None, alias='status'),
    payment_method: str | None = Query(None, alias='payment'),
    page: int = Query(1),
    limit: int = Query(10),
    db: D1Client = Depends(get_db),
):
    if action == 'get':
        if bill_id is None:
            raise ValidationError('Bill ID required', details={'field': 'billId'})
        return {'bill': get_bill(db, bill_id)}
    if action != 'list':
        raise ValidationError('Invalid action', details={'action': action})
    return list_bills(
        db,
        search=search,
        start_date=start_date,
        end_date=end_date,
        status=payment_status,
        payment=payment_method,
        page=page,
        limit=limit,
    )


@router.post('', status_code=status.HTTP_201_CREATED)
def bills_create(payload: Any = Body(None), db: D1Client = Depends(get_db)):
    if payload is None:
        raise ValidationError('Request body is empty')
    result = create_bill(db, payload)
    return {'success': True, **result}


@router.patch('')
def bills_next_number(db: D1Client = Depends(get_db)):
    return {'success': True, 'billNumber': next_bill_number(db)}


@router.put('')
def bills_update_from_body(payload: Any = Body(None), db: D1Client = Depends(get_db)):
    if not isinstance(payload, dict) or payload.get('id') in (None, ''):
        raise ValidationError('Bill ID required', details={'field': 'id'})
    bill = update_bill(db, payload['id'], {key: value for key, value in payload.items() if key != 'id'})
    return {'success': True, 'message': 'Bill updated successfully', 'billId': bill['id'], 'bill': bill}


@router.delete('')
def bills_delete_by_query(bill_id: int | None = Query(None, alias='billId'), db: D1Client = Depends(get_db)):
    if bill_id is None:
        raise ValidationError('Bill ID required', details={'field': 'billId'})
    return {'success': True, **delete_bill(db, bill_id)}


@router.get('/by-number/{bill_number}')
def bills_get_by_number(bill_number: str, db: D1Client = Depends(get_db)):
    return {'bill': get_bill_by_number(db, bill_number)}


@router.delete('/by-number/{bill_number}')
def bills_delete_by_number(bill_number: str, db: D1Client = Depends(get_db)):
    return {'success': True, 'message': 'Bill deleted successfully', **delete_bill_by_number(db, bill_number)}


@router.get('/{bill_id}')
def bills_get(bill_id: int, db: D1Client = Depends(get_db)):
    return {'bill': get_bill(db, bill_id)}


@router.put('/{bill_id}')
def bills_update(bill_id: int, payload: Any = Body(None), db: D1Client = Depends(get_db)):
    if payload is None:
        raise ValidationError('Request body is empty')
    bill = update_bill(db, bill_id, payload)
    return {'success': True, 'message': 'Bill updated successfully', 'bill': bill}


@router.delete('/{bill_id}')
def bills_delete(bill_id: int, db: D1Client = Depends(get_db)):
    return {'success': True, 'message': 'Bill deleted successfully', **delete_bill(db, bill_id)}
