from __future__ import annotations

import http.client
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from sqlalchemy.dialects import sqlite
from sqlalchemy.sql import ClauseElement

from billdesk.config import Settings
from billdesk.errors import AuthError, BackendError, BatchError, ConfigError, RemoteError, TransportError

logger = logging.getLogger(__name__)

_DIALECT = sqlite.dialect()
_AUTH_ERROR_CODES = {10000, 10001}
_AUTH_MARKERS = ('authentication error', 'unauthorized', 'invalid api token', 'invalid access token', 'token expired')


@dataclass(frozen=True)
class Statement:
    sql: str
    params: list = field(default_factory=list)


@dataclass(frozen=True)
class RowSet:
    results: list[dict]
    meta: dict

    def first(self) -> dict | None:
        return self.results[0] if self.results else None

    @property
    def last_row_id(self) -> int | None:
        value = self.meta.get('last_row_id')
        return int(value) if value is not None else None

    @property
    def changes(self) -> int:
        return int(self.meta.get('changes') or 0)


def compile_statement(stmt: ClauseElement) -> Statement:
    compiled = stmt.compile(dialect=_DIALECT, compile_kwargs={'render_postcompile': True})
    # DDL compilers carry no bind parameters.
    names = getattr(compiled, 'positiontup', None)
    if not names:
        return Statement(sql=str(compiled))
    values = compiled.construct_params()
    return Statement(sql=str(compiled), params=[values[name] for name in names])


def _json_default(value):
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f'Object of type {type(value).__name__} is not JSON serializable')


def _parse_errors(body: str) -> list[dict]:
    try:
        parsed = json.loads(body)
    except ValueError:
        return []
    if not isinstance(parsed, dict):
        return []
    return [err for err in parsed.get('errors') or [] if isinstance(err, dict)]


def _is_auth_failure(errors: list[dict]) -> bool:
    for err in errors:
        if err.get('code') in _AUTH_ERROR_CODES:
            return True
        message = str(err.get('message') or '').lower()
        if any(marker in message for marker in _AUTH_MARKERS):
            return True
    return False


def _first_message(errors: list[dict]) -> str:
    if errors and errors[0].get('message'):
        return str(errors[0]['message'])
    return 'Unknown error'


class D1Client:
    def __init__(
        self,
        *,
        account_id: str | None,
        database_id: str | None,
        api_token: str | None,
        base_url: str = 'https://api.cloudflare.com/client/v4',
        timeout_seconds: float = 30,
    ) -> None:
        missing = []
        if not account_id:
            missing.append('CLOUDFLARE_ACCOUNT_ID')
        if not database_id:
            missing.append('CLOUDFLARE_D1_DATABASE_ID')
        if not api_token:
            missing.append('CLOUDFLARE_API_TOKEN')
        if missing:
            raise ConfigError(missing)
        if timeout_seconds <= 0:
            raise ValueError('D1 timeout must be greater than zero')

        self.endpoint = f"{base_url.rstrip('/')}/accounts/{account_id}/d1/database/{database_id}/query"
        self.timeout_seconds = timeout_seconds
        self.headers = {
            'Authorization': f'Bearer {api_token}',
            'Content-Type': 'application/json',
        }

    @classmethod
    def from_settings(cls, settings: Settings) -> D1Client:
        return cls(
            account_id=settings.cloudflare_account_id,
            database_id=settings.cloudflare_d1_database_id,
            api_token=settings.cloudflare_api_token,
            base_url=settings.d1_api_base_url_normalized,
            timeout_seconds=settings.d1_timeout_seconds,
        )

    def _post(self, payload: dict) -> dict:
        req = Request(
            url=self.endpoint,
            data=json.dumps(payload, default=_json_default).encode('utf-8'),
            headers=self.headers,
            method='POST',
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                raw = response.read()
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            errors = _parse_errors(body)
            if exc.code in (401, 403) or _is_auth_failure(errors):
                raise AuthError(
                    f'D1 API rejected credentials ({exc.code}): {_first_message(errors)}',
                    errors=errors,
                    http_status=exc.code,
                ) from exc
            # D1 answers failed SQL with a 4xx and a structured errors body.
            if errors:
                raise BackendError(
                    f'D1 query failed ({exc.code}): {_first_message(errors)}',
                    errors=errors,
                    http_status=exc.code,
                ) from exc
            raise TransportError(f'D1 API error {exc.code}: {body}', http_status=exc.code) from exc
        except URLError as exc:
            raise TransportError(f'D1 API network error: {exc.reason}') from exc
        except TimeoutError as exc:
            raise TransportError(f'D1 API request timed out after {self.timeout_seconds}s') from exc
        except (OSError, http.client.HTTPException) as exc:
            raise TransportError(f'D1 API connection failed: {type(exc).__name__}: {exc}') from exc

        try:
            parsed = json.loads(raw.decode('utf-8'))
        except ValueError as exc:
            raise BackendError('D1 API returned a body that is not JSON') from exc
        if not isinstance(parsed, dict):
            raise BackendError('D1 API returned an unexpected body')

        errors = [err for err in parsed.get('errors') or [] if isinstance(err, dict)]
        if not parsed.get('success'):
            if _is_auth_failure(errors):
                raise AuthError(f'D1 API rejected credentials: {_first_message(errors)}', errors=errors)
            raise BackendError(f'D1 query failed: {_first_message(errors)}', errors=errors)
        return parsed

    def query(self, sql: str, params: list | tuple | None = None) -> RowSet:
        params = list(params or [])
        logger.debug('D1 query: %s (%d params)', ' '.join(sql.split())[:80], len(params))
        try:
            parsed = self._post({'sql': sql, 'params': params})
        except RemoteError as exc:
            logger.warning('D1 query failed: %s', exc.message)
            raise

        result = parsed.get('result') or []
        if not result:
            raise BackendError('D1 API returned no result set')
        first = result[0]
        return RowSet(results=list(first.get('results') or []), meta=dict(first.get('meta') or {}))

    def execute(self, sql: str, params: list | tuple | None = None) -> RowSet:
        return self.query(sql, params)

    def run(self, stmt: ClauseElement) -> RowSet:
        compiled = compile_statement(stmt)
        return self.query(compiled.sql, compiled.params)

    def batch(self, statements: list[Statement | ClauseElement]) -> list[RowSet]:
        # Sequential and non-atomic: statements before a failure stay applied.
        results: list[RowSet] = []
        total = len(statements)
        for index, statement in enumerate(statements, start=1):
            if not isinstance(statement, Statement):
                statement = compile_statement(statement)
            try:
                results.append(self.query(statement.sql, statement.params))
            except RemoteError as exc:
                logger.error('D1 batch statement %d/%d failed: %s', index, total, exc.message)
                raise BatchError(index, exc) from exc
        return results
