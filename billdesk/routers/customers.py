from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from billdesk.db import get_db
from billdesk.services.customer_service import search_customers
from billdesk.services.d1_client import D1Client

router = APIRouter(prefix='/api/customers', tags=['customers'])


@router.get('/search')
def customers_search(q: str | None = Query(None), db: D1Client = Depends(get_db)):
    return [profile.as_dict() for profile in search_customers(db, q)]
