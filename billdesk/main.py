import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from billdesk.config import configure_logging
from billdesk.errors import BillingError
from billdesk.routers import bills, customers, system

logger = logging.getLogger(__name__)


configure_logging()

app = FastAPI(title='Billdesk')


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s (%s)', request.method, request.url.path, exc.message, exc.kind)
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(
            {
                'success': False,
                'error': 'Invalid request',
                'kind': 'validation',
                'details': {'errors': [{k: v for k, v in err.items() if k != 'ctx'} for err in exc.errors()]},
            }
        ),
    )


app.include_router(bills.router)
app.include_router(customers.router)
app.include_router(system.router)
