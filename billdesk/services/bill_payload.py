from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from billdesk.errors import ValidationError
from billdesk.models import PaymentMethod, PaymentStatus

_NUMBER_RE = re.compile(r'\d+\.?\d*')
TOTAL_TOLERANCE = Decimal('0.01')

REQUIRED_FIELDS = ('customer_name', 'customer_phone', 'invoice_date')
TEXT_FIELDS = (
    'bill_number',
    'challan_number',
    'po_number',
    'dispatch_details',
    'customer_email',
    'customer_address',
    'customer_gst_number',
    'vendor_code',
    'hsn_code',
    'payment_terms',
    'notes',
    'terms_and_conditions',
)
DATE_FIELDS = ('challan_date', 'po_date')
MONEY_FIELDS = (
    'subtotal',
    'cgst_percentage',
    'cgst_amount',
    'sgst_percentage',
    'sgst_amount',
    'igst_percentage',
    'igst_amount',
    'total_tax_amount',
    'discount_percentage',
    'discount_amount',
    'total_amount',
)
# Columns that must never be written as NULL; absent on create means zero.
ZERO_DEFAULT_FIELDS = ('subtotal', 'total_tax_amount', 'total_amount')
TOTAL_FIELDS = ('subtotal', 'total_tax_amount', 'discount_amount', 'total_amount')
BANK_DETAIL_COLUMNS = {
    'bank_name': 'bank_name',
    'account_number': 'bank_account_number',
    'branch': 'bank_branch',
    'ifsc_code': 'bank_ifsc_code',
    'account_type': 'bank_account_type',
}
DEFAULT_PAYMENT_METHOD = PaymentMethod.CASH
DEFAULT_PAYMENT_STATUS = PaymentStatus.PENDING
DEFAULT_UNIT = 'Nos'


def extract_numeric_value(value) -> Decimal:
    """Return the first number found in ``value``, or zero when there is none.

    ``"12 sets"`` gives ``Decimal('12')`` and ``"approx 2.5 kg"`` gives
    ``Decimal('2.5')``. Numbers pass through unchanged.
    """
    if value is None or isinstance(value, bool):
        return Decimal('0')
    if isinstance(value, (int, float, Decimal)):
        return Decimal(str(value))
    match = _NUMBER_RE.search(str(value))
    if not match:
        return Decimal('0')
    return Decimal(match.group(0))


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _decimal(value, field: str, *, item: int | None = None) -> Decimal:
    if value is None or value == '':
        return Decimal('0')
    if isinstance(value, bool):
        raise _invalid(field, 'must be a number', item=item)
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation as exc:
        raise _invalid(field, 'must be a number', item=item) from exc
    if not number.is_finite():
        raise _invalid(field, 'must be a number', item=item)
    return number


def _invalid(field: str, problem: str, *, item: int | None = None) -> ValidationError:
    if item is None:
        return ValidationError(f'{field} {problem}', details={'field': field})
    return ValidationError(f'Item {item}: {field} {problem}', details={'item': item, 'field': field})


def iso_date(value, field: str) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = _clean_text(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        raise _invalid(field, 'must be a date in YYYY-MM-DD format') from exc


def enum_value(value, enum_cls, field: str) -> str:
    try:
        return enum_cls(str(value).strip().lower()).value
    except ValueError as exc:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(
            f'{field} must be one of: {allowed}',
            details={'field': field, 'allowed': [member.value for member in enum_cls]},
        ) from exc


def missing_required_fields(payload: dict) -> list[str]:
    return [name for name in REQUIRED_FIELDS if _clean_text(payload.get(name)) is None]


def normalize_header(payload: dict, *, partial: bool = False) -> dict:
    """Map a bill payload onto ``bills`` columns.

    With ``partial`` only keys present in the payload are returned, which is
    what an update needs. Otherwise every column gets a value or its default.
    """
    present = (lambda name: name in payload) if partial else (lambda name: True)
    row: dict = {}

    for name in REQUIRED_FIELDS:
        if not present(name):
            continue
        if _clean_text(payload.get(name)) is None:
            raise ValidationError('Missing required fields', details={'missing_fields': [name]})
        if name == 'invoice_date':
            row[name] = iso_date(payload[name], name)
        else:
            row[name] = _clean_text(payload[name])

    for name in TEXT_FIELDS:
        if present(name):
            row[name] = _clean_text(payload.get(name))

    for name in DATE_FIELDS:
        if present(name):
            row[name] = iso_date(payload.get(name), name)

    if present('customer_code'):
        code = payload.get('customer_code')
        if code in (None, ''):
            row['customer_code'] = None
        else:
            try:
                row['customer_code'] = int(code)
            except (TypeError, ValueError) as exc:
                raise _invalid('customer_code', 'must be an integer') from exc

    for name in MONEY_FIELDS:
        if partial and name not in payload:
            continue
        if not partial and payload.get(name) in (None, '') and name not in ZERO_DEFAULT_FIELDS:
            continue
        amount = _decimal(payload.get(name), name)
        if amount < 0:
            raise _invalid(name, 'cannot be negative')
        row[name] = amount

    if present('payment_method'):
        raw = payload.get('payment_method')
        if raw in (None, ''):
            if partial:
                raise _invalid('payment_method', 'cannot be empty')
            raw = DEFAULT_PAYMENT_METHOD.value
        row['payment_method'] = enum_value(raw, PaymentMethod, 'payment_method')

    if present('payment_status'):
        raw = payload.get('payment_status')
        if raw in (None, ''):
            if partial:
                raise _invalid('payment_status', 'cannot be empty')
            raw = DEFAULT_PAYMENT_STATUS.value
        row['payment_status'] = enum_value(raw, PaymentStatus, 'payment_status')

    row.update(_bank_columns(payload, partial=partial))
    return row


def _bank_columns(payload: dict, *, partial: bool) -> dict:
    details = payload.get('bank_details')
    if isinstance(details, dict):
        return {column: _clean_text(details.get(key)) for key, column in BANK_DETAIL_COLUMNS.items()}
    columns = {}
    for column in BANK_DETAIL_COLUMNS.values():
        if not partial or column in payload:
            columns[column] = _clean_text(payload.get(column))
    return columns


def check_totals(values: dict) -> None:
    subtotal = _decimal(values.get('subtotal'), 'subtotal')
    tax = _decimal(values.get('total_tax_amount'), 'total_tax_amount')
    discount = _decimal(values.get('discount_amount'), 'discount_amount')
    total = _decimal(values.get('total_amount'), 'total_amount')
    expected = subtotal + tax - discount
    if abs(total - expected) > TOTAL_TOLERANCE:
        raise ValidationError(
            'total_amount must equal subtotal + total_tax_amount - discount_amount',
            details={'field': 'total_amount', 'expected': str(expected), 'actual': str(total)},
        )


def is_blank_item(item: dict) -> bool:
    for name in ('product_name', 'product_description', 'product_category', 'hsn_code'):
        if _clean_text(item.get(name)) is not None:
            return False
    for name in ('unit_price', 'total_price', 'quantity'):
        if extract_numeric_value(item.get(name)) > 0:
            return False
    return True


def normalize_item(item: dict, position: int) -> dict:
    """Validate one line item and map it onto ``bill_items`` columns (without ``bill_id``)."""
    if not isinstance(item, dict):
        raise ValidationError(f'Item {position}: must be an object', details={'item': position})

    product_name = _clean_text(item.get('product_name'))
    if product_name is None:
        raise ValidationError(f'Item {position}: Product name is required', details={'item': position, 'field': 'product_name'})
    product_category = _clean_text(item.get('product_category'))
    if product_category is None:
        raise ValidationError(
            f'Item {position}: Product category is required', details={'item': position, 'field': 'product_category'}
        )

    unit_price = _decimal(item.get('unit_price'), 'unit_price', item=position)
    quantity_text = _clean_text(item.get('quantity')) or '1'
    total_price = _decimal(item.get('total_price'), 'total_price', item=position)

    if unit_price <= 0:
        raise ValidationError(f'Item {position}: Unit price must be greater than 0', details={'item': position, 'field': 'unit_price'})
    if extract_numeric_value(quantity_text) <= 0:
        raise ValidationError(f'Item {position}: Quantity must be greater than 0', details={'item': position, 'field': 'quantity'})
    if total_price <= 0:
        raise ValidationError(f'Item {position}: Total price must be greater than 0', details={'item': position, 'field': 'total_price'})

    sr_no = item.get('sr_no')
    try:
        sr_no = int(sr_no) if sr_no not in (None, '') else position
    except (TypeError, ValueError) as exc:
        raise _invalid('sr_no', 'must be an integer', item=position) from exc

    return {
        'sr_no': sr_no,
        'product_name': product_name,
        'product_description': _clean_text(item.get('product_description')),
        'product_category': product_category,
        'hsn_code': _clean_text(item.get('hsn_code')),
        'unit_price': unit_price,
        'quantity': quantity_text,
        'total_price': total_price,
        'unit': _clean_text(item.get('unit')) or DEFAULT_UNIT,
    }


def normalize_items(items, *, skip_blank: bool = False) -> list[dict]:
    if not isinstance(items, list):
        raise ValidationError('items must be a list', details={'field': 'items'})
    rows = []
    for position, item in enumerate(items, start=1):
        if skip_blank and isinstance(item, dict) and is_blank_item(item):
            continue
        rows.append(normalize_item(item, position))
    return rows
