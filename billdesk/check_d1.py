from __future__ import annotations

import argparse
import json
import sys

from billdesk.config import configure_logging, settings
from billdesk.errors import BillingError
from billdesk.services.d1_client import D1Client
from billdesk.services.schema_service import ensure_schema


def check_connection(*, bootstrap: bool = False) -> dict:
    client = D1Client.from_settings(settings)
    result = client.query('SELECT 1 as test')
    if bootstrap:
        ensure_schema(client)
    return {'results': result.results, 'meta': result.meta}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Check connectivity to the Cloudflare D1 billing database.')
    parser.add_argument(
        '--bootstrap',
        action='store_true',
        help='Also create missing tables and indexes and seed company info.',
    )
    parser.add_argument('--verbose', action='store_true', help='Log each statement sent to D1.')
    args = parser.parse_args(argv)
    configure_logging('DEBUG' if args.verbose else None, force=True)

    print(f"Account ID: {'set' if settings.cloudflare_account_id else 'missing'}")
    print(f"Database ID: {'set' if settings.cloudflare_d1_database_id else 'missing'}")
    print(f"API token: {'set' if settings.cloudflare_api_token else 'missing'}")

    try:
        result = check_connection(bootstrap=args.bootstrap)
    except BillingError as exc:
        print(f'D1 check failed ({exc.kind}): {exc.message}', file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2))
    print('D1 connection successful' + (' and schema ensured' if args.bootstrap else ''))
    return 0


if __name__ == '__main__':
    sys.exit(main())
