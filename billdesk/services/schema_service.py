from __future__ import annotations

import logging

from sqlalchemy import func, insert, select
from sqlalchemy.schema import CreateIndex, CreateTable

from billdesk.config import Settings, settings as default_settings
from billdesk.models import COMPANY_INFO_ID, Base, CompanyInfo
from billdesk.services.d1_client import D1Client, Statement, compile_statement

logger = logging.getLogger(__name__)


def schema_statements() -> list[Statement]:
    statements: list[Statement] = []
    for table in Base.metadata.sorted_tables:
        statements.append(compile_statement(CreateTable(table, if_not_exists=True)))
    for table in Base.metadata.sorted_tables:
        for index in sorted(table.indexes, key=lambda idx: idx.name):
            statements.append(compile_statement(CreateIndex(index, if_not_exists=True)))
    return statements


def _company_seed(settings: Settings) -> dict:
    return {
        'id': COMPANY_INFO_ID,
        'name': settings.company_name,
        'address': settings.company_address,
        'phone': settings.company_phone,
        'email': settings.company_email,
        'gst_number': settings.company_gst_number,
        'pan_number': settings.company_pan_number,
        'state_code': settings.company_state_code,
        'logo_url': settings.company_logo_url,
    }


def ensure_company_info(client: D1Client, settings: Settings = default_settings) -> bool:
    # Count-then-insert is best effort; two cold starts can both see zero,
    # in which case the fixed primary key rejects the second insert.
    row = client.run(select(func.count().label('count')).select_from(CompanyInfo)).first() or {}
    if int(row.get('count') or 0) > 0:
        return False
    client.run(insert(CompanyInfo).values(**_company_seed(settings)))
    logger.info('Seeded company info row %d', COMPANY_INFO_ID)
    return True


def ensure_schema(client: D1Client, settings: Settings = default_settings) -> None:
    logger.info('Ensuring billing schema')
    for statement in schema_statements():
        client.execute(statement.sql, statement.params)
    ensure_company_info(client, settings)
