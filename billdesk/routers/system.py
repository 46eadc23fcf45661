from __future__ import annotations

from fastapi import APIRouter, Depends

from billdesk.db import get_db
from billdesk.services.company_service import get_company_info
from billdesk.services.d1_client import D1Client

router = APIRouter(prefix='/api', tags=['system'])


@router.get('/company')
def company_info(db: D1Client = Depends(get_db)):
    return {'company': get_company_info(db)}


@router.get('/debug/db')
def database_check(db: D1Client = Depends(get_db)):
    result = db.query('SELECT 1 as test')
    return {
        'success': True,
        'message': 'Database connection successful',
        'testResult': {'results': result.results, 'meta': result.meta},
    }
