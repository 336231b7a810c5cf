"""Tests for invoice totals and rendering."""

import uuid
from datetime import datetime, timezone

from invoices import (
    format_price,
    format_invoice_date,
    invoice_number,
    get_invoice_summary,
    render_invoice_html
)

ORDER = {
    'id': uuid.UUID('a1b2c3d4-0000-4000-8000-000000000000'),
    'product_title': 'Adire <Silk> Scarf',
    'product_category': 'accessories',
    'quantity': 2,
    'amount_cents': 1000000,
    'currency': 'NGN',
    'customer_name': 'Tolu & Co',
    'customer_email': 'tolu@example.com',
    'shipping_address': '12 Allen Avenue, Ikeja',
    'order_status': 'delivered',
    'delivery_status': 'delivered',
    'payout_status': 'in_escrow',
    'tracking_number': 'GIG-4411',
    'created_at': datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc),
    'delivered_at': datetime(2025, 1, 20, tzinfo=timezone.utc)
}

def test_format_price():
    assert format_price(150000, 'NGN') == '₦1,500'
    assert format_price(150050, 'NGN') == '₦1,500.5'
    assert format_price(1999, 'USD') == '$19.99'
    assert format_price(0, 'NGN') == '₦0'

def test_format_invoice_date():
    assert format_invoice_date(datetime(2025, 1, 15)) == 'Wednesday, January 15, 2025'
    assert format_invoice_date('2025-01-15T10:30:00Z') == 'Wednesday, January 15, 2025'
    assert format_invoice_date(None) == 'N/A'
    assert format_invoice_date('not a date') == 'N/A'

def test_invoice_number():
    assert invoice_number(ORDER['id']) == 'INV-A1B2C3D4'

def test_summary_applies_tax_and_free_shipping():
    summary = get_invoice_summary(ORDER, tax_rate=0.075)

    assert summary['subtotal'] == 1000000
    assert summary['tax'] == 75000
    assert summary['shipping'] == 0
    assert summary['total'] == 1075000
    assert summary['total_formatted'] == '₦10,750'

def test_summary_rounds_tax_to_cents():
    assert get_invoice_summary(dict(ORDER, amount_cents=999), tax_rate=0.075)['tax'] == 75

def test_html_invoice_escapes_order_values():
    document = render_invoice_html(ORDER, tax_rate=0.075)

    assert document.startswith('<!DOCTYPE html>')
    assert 'INV-A1B2C3D4' in document
    assert 'Adire &lt;Silk&gt; Scarf' in document
    assert 'Tolu &amp; Co' in document
    assert '<Silk>' not in document
    assert 'GIG-4411' in document
    assert 'Wednesday, January 15, 2025' in document
    assert '₦10,750' in document

def test_html_invoice_without_optional_fields():
    order = {k: v for k, v in ORDER.items() if k not in ('tracking_number', 'delivered_at', 'shipping_address')}
    document = render_invoice_html(order, tax_rate=0)

    assert 'Tracking:' not in document
    assert '₦10,000' in document

def test_half_cent_tax_rounds_up():
    assert get_invoice_summary(dict(ORDER, amount_cents=60), tax_rate=0.075)['tax'] == 5
    assert get_invoice_summary(dict(ORDER, amount_cents=300), tax_rate=0.075)['tax'] == 23
