from __future__ import annotations

import unittest

from billdesk.errors import ValidationError
from billdesk.services.bill_service import create_bill
from billdesk.services.customer_service import MAX_RESULTS, search_customers

from fake_d1 import D1TestCase, rajesh_payload


class SearchCustomersTests(D1TestCase):
    def test_returns_details_from_most_recent_bill_per_name(self) -> None:
        create_bill(self.client, rajesh_payload(customer_phone='111', customer_address='Old Street'))
        create_bill(self.client, rajesh_payload(customer_phone='222', customer_address='New Street', customer_code=7))
        create_bill(self.client, rajesh_payload(customer_name='Rajeshwari Traders', customer_gst_number='27ABC'))
        create_bill(self.client, rajesh_payload(customer_name='Anil'))

        profiles = search_customers(self.client, 'rajesh')

        self.assertEqual([p.customer_name for p in profiles], ['Rajesh Kumar', 'Rajeshwari Traders'])
        self.assertEqual(profiles[0].customer_phone, '222')
        self.assertEqual(profiles[0].customer_address, 'New Street')
        self.assertEqual(profiles[0].customer_code, 7)
        self.assertEqual(profiles[1].as_dict()['customer_gst_number'], '27ABC')

    def test_results_are_capped(self) -> None:
        for n in range(MAX_RESULTS + 2):
            create_bill(self.client, rajesh_payload(customer_name=f'Customer {n:02d}'))

        profiles = search_customers(self.client, 'customer')

        self.assertEqual(len(profiles), MAX_RESULTS)
        self.assertEqual(profiles[0].customer_name, 'Customer 00')

    def test_short_query_is_rejected_without_a_request(self) -> None:
        sent = len(self.fake.requests)

        for query in (None, '', '  ab  '):
            with self.subTest(query=query):
                with self.assertRaises(ValidationError):
                    search_customers(self.client, query)

        self.assertEqual(len(self.fake.requests), sent)

    def test_like_wildcards_are_matched_literally(self) -> None:
        create_bill(self.client, rajesh_payload(customer_name='100% Cotton'))
        create_bill(self.client, rajesh_payload(customer_name='1000 Chairs'))

        profiles = search_customers(self.client, '100%')

        self.assertEqual([p.customer_name for p in profiles], ['100% Cotton'])


if __name__ == '__main__':
    unittest.main()
