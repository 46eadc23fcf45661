from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PaymentMethod(str, Enum):
    CASH = 'cash'
    CARD = 'card'
    UPI = 'upi'
    BANK_TRANSFER = 'bank_transfer'
    CHEQUE = 'cheque'
    DD = 'dd'


class PaymentStatus(str, Enum):
    PAID = 'paid'
    PENDING = 'pending'
    PARTIAL = 'partial'


def _in_list(column: str, enum_cls: type[Enum]) -> str:
    values = ', '.join(f"'{member.value}'" for member in enum_cls)
    return f'{column} IN ({values})'


def _money(**kwargs) -> Mapped[Decimal]:
    return mapped_column(Numeric(12, 2), **kwargs)


class Bill(Base):
    __tablename__ = 'bills'
    __table_args__ = (
        CheckConstraint(_in_list('payment_method', PaymentMethod), name='ck_bills_payment_method'),
        CheckConstraint(_in_list('payment_status', PaymentStatus), name='ck_bills_payment_status'),
        Index('idx_bills_customer_name', 'customer_name'),
        Index('idx_bills_customer_code', 'customer_code'),
        Index('idx_bills_invoice_date', 'invoice_date'),
        Index('idx_bills_payment_status', 'payment_status'),
        Index('idx_bills_customer_gst', 'customer_gst_number'),
        Index('idx_bills_bill_number', 'bill_number'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bill_number: Mapped[str | None] = mapped_column(Text)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    challan_number: Mapped[str | None] = mapped_column(Text)
    challan_date: Mapped[date | None] = mapped_column(Date)
    po_number: Mapped[str | None] = mapped_column(Text)
    po_date: Mapped[date | None] = mapped_column(Date)
    dispatch_details: Mapped[str | None] = mapped_column(Text)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    customer_code: Mapped[int | None] = mapped_column(Integer)
    customer_phone: Mapped[str] = mapped_column(Text, nullable=False)
    customer_email: Mapped[str | None] = mapped_column(Text)
    customer_address: Mapped[str | None] = mapped_column(Text)
    customer_gst_number: Mapped[str | None] = mapped_column(Text)
    vendor_code: Mapped[str | None] = mapped_column(Text)
    hsn_code: Mapped[str | None] = mapped_column(Text)
    subtotal: Mapped[Decimal] = _money(nullable=False)
    cgst_percentage: Mapped[Decimal] = _money(server_default=text('9.0'))
    cgst_amount: Mapped[Decimal] = _money(server_default=text('0'))
    sgst_percentage: Mapped[Decimal] = _money(server_default=text('9.0'))
    sgst_amount: Mapped[Decimal] = _money(server_default=text('0'))
    igst_percentage: Mapped[Decimal] = _money(server_default=text('18.0'))
    igst_amount: Mapped[Decimal] = _money(server_default=text('0'))
    total_tax_amount: Mapped[Decimal] = _money(nullable=False)
    discount_percentage: Mapped[Decimal] = _money(server_default=text('0'))
    discount_amount: Mapped[Decimal] = _money(server_default=text('0'))
    total_amount: Mapped[Decimal] = _money(nullable=False)
    payment_method: Mapped[str] = mapped_column(Text, nullable=False)
    payment_status: Mapped[str] = mapped_column(Text, nullable=False)
    payment_terms: Mapped[str | None] = mapped_column(Text)
    bank_name: Mapped[str | None] = mapped_column(Text)
    bank_account_number: Mapped[str | None] = mapped_column(Text)
    bank_branch: Mapped[str | None] = mapped_column(Text)
    bank_ifsc_code: Mapped[str | None] = mapped_column(Text)
    bank_account_type: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    terms_and_conditions: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.current_timestamp())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.current_timestamp())


class BillItem(Base):
    __tablename__ = 'bill_items'
    __table_args__ = (
        Index('idx_bill_items_bill_id', 'bill_id'),
        Index('idx_bill_items_hsn_code', 'hsn_code'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bill_id: Mapped[int] = mapped_column(Integer, ForeignKey('bills.id', ondelete='CASCADE'), nullable=False)
    sr_no: Mapped[int] = mapped_column(Integer, nullable=False)
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    product_description: Mapped[str | None] = mapped_column(Text)
    product_category: Mapped[str] = mapped_column(Text, nullable=False)
    hsn_code: Mapped[str | None] = mapped_column(Text)
    unit_price: Mapped[Decimal] = _money(nullable=False)
    # Free text such as "12" or "12 sets"; numeric value is derived on write.
    quantity: Mapped[str] = mapped_column(Text, nullable=False)
    total_price: Mapped[Decimal] = _money(nullable=False)
    unit: Mapped[str | None] = mapped_column(Text, server_default=text("'Nos'"))


class CompanyInfo(Base):
    __tablename__ = 'company_info'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    gst_number: Mapped[str] = mapped_column(Text, nullable=False)
    pan_number: Mapped[str] = mapped_column(Text, nullable=False)
    state_code: Mapped[str] = mapped_column(Text, nullable=False)
    logo_url: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.current_timestamp())


COMPANY_INFO_ID = 1

BILL_HEADER_COLUMNS = tuple(column.name for column in Bill.__table__.columns if column.name != 'id')
BILL_ITEM_COLUMNS = tuple(column.name for column in BillItem.__table__.columns if column.name not in {'id', 'bill_id'})
