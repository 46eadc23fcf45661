from __future__ import annotations

import unittest

from billdesk.config import Settings
from billdesk.errors import NotFoundError
from billdesk.services.company_service import get_company_info
from billdesk.services.schema_service import ensure_company_info, ensure_schema, schema_statements

from fake_d1 import FakeD1


class SchemaServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.fake = FakeD1()
        patcher = self.fake.patch()
        patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.fake.client()
        self.settings = Settings(_env_file=None, company_name='Test Traders', company_gst_number='27TEST')

    def test_schema_statements_are_idempotent_creates(self) -> None:
        statements = [statement.sql for statement in schema_statements()]

        self.assertTrue(all('IF NOT EXISTS' in sql for sql in statements))
        tables = [sql for sql in statements if sql.lstrip().startswith('CREATE TABLE')]
        self.assertEqual(len(tables), 3)
        self.assertLess(
            next(i for i, sql in enumerate(statements) if 'TABLE IF NOT EXISTS bills ' in sql),
            next(i for i, sql in enumerate(statements) if 'TABLE IF NOT EXISTS bill_items ' in sql),
        )
        self.assertTrue(any('idx_bills_bill_number' in sql for sql in statements))

    def test_ensure_schema_creates_tables_indexes_and_company_row(self) -> None:
        ensure_schema(self.client, self.settings)

        tables = {row['name'] for row in self.fake.rows("SELECT name FROM sqlite_master WHERE type = 'table'")}
        indexes = {row['name'] for row in self.fake.rows("SELECT name FROM sqlite_master WHERE type = 'index'")}
        self.assertTrue({'bills', 'bill_items', 'company_info'} <= tables)
        self.assertTrue(
            {
                'idx_bills_customer_name',
                'idx_bills_customer_code',
                'idx_bills_invoice_date',
                'idx_bills_payment_status',
                'idx_bills_customer_gst',
                'idx_bills_bill_number',
                'idx_bill_items_bill_id',
                'idx_bill_items_hsn_code',
            }
            <= indexes
        )
        company = get_company_info(self.client)
        self.assertEqual(company['id'], 1)
        self.assertEqual(company['name'], 'Test Traders')
        self.assertEqual(company['gst_number'], '27TEST')

    def test_ensure_schema_twice_keeps_single_company_row(self) -> None:
        ensure_schema(self.client, self.settings)
        ensure_schema(self.client, Settings(_env_file=None, company_name='Other Name'))

        rows = self.fake.rows('SELECT name FROM company_info')
        self.assertEqual(rows, [{'name': 'Test Traders'}])

    def test_ensure_company_info_reports_whether_it_seeded(self) -> None:
        ensure_schema(self.client, self.settings)
        self.fake.conn.execute('DELETE FROM company_info')

        self.assertTrue(ensure_company_info(self.client, self.settings))
        self.assertFalse(ensure_company_info(self.client, self.settings))

    def test_company_info_missing_raises_not_found(self) -> None:
        ensure_schema(self.client, self.settings)
        self.fake.conn.execute('DELETE FROM company_info')

        with self.assertRaises(NotFoundError):
            get_company_info(self.client)


if __name__ == '__main__':
    unittest.main()
