from __future__ import annotations

from sqlalchemy import select

from billdesk.errors import NotFoundError
from billdesk.models import COMPANY_INFO_ID, CompanyInfo
from billdesk.services.d1_client import D1Client


def get_company_info(client: D1Client) -> dict:
    row = client.run(select(CompanyInfo).where(CompanyInfo.id == COMPANY_INFO_ID)).first()
    if row is None:
        raise NotFoundError('Company information not found')
    return row
