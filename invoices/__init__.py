"""Invoice rendering for orders.

Builds the totals for an order invoice and renders a standalone HTML
document that the buyer or seller can download or print.
"""

import html
import logging
from datetime import datetime, date, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Union

from config import settings_conf

logger = logging.getLogger(__name__)

TAX_RATE = settings_conf['tax_rate']
BRAND_NAME = 'LUXELA'
BRAND_TAGLINE = 'Fashion E-Commerce Platform'

CURRENCY_SYMBOLS = {
    'NGN': '₦',
}
DEFAULT_SYMBOL = '$'

def format_price(cents: int, currency: str = 'NGN') -> str:
    """Format an amount in cents, e.g. 150000 NGN -> '₦1,500'.

    Naira amounts use the naira sign, anything else is shown in dollars.
    Whole amounts have no decimals; others show up to two.
    """
    symbol = CURRENCY_SYMBOLS.get((currency or '').upper(), DEFAULT_SYMBOL)
    sign = '-' if cents < 0 else ''
    whole, fraction = divmod(abs(int(cents)), 100)
    text = f"{whole:,}"
    if fraction:
        text += f".{fraction:02d}".rstrip('0')
    return f"{sign}{symbol}{text}"

def format_invoice_date(value: Union[datetime, date, str, None]) -> str:
    """Format a date as 'Weekday, Month D, YYYY', or 'N/A' when missing or unreadable."""
    if not value:
        return 'N/A'
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            return 'N/A'
    return f"{value:%A, %B} {value.day}, {value.year}"

def invoice_number(order_id: Any) -> str:
    return f"INV-{str(order_id)[:8].upper()}"

def get_invoice_summary(order: Dict[str, Any], tax_rate: Optional[float] = None) -> Dict[str, Any]:
    """Work out invoice totals for an order.

    Shipping is free; tax is applied to the order amount and rounded to
    the nearest cent, halves up.

    Returns:
        Dict with subtotal, tax, shipping and total in cents, each also as
        a formatted string
    """
    rate = TAX_RATE if tax_rate is None else tax_rate
    currency = order.get('currency') or settings_conf['default_currency']

    subtotal = int(order['amount_cents'])
    tax = int((Decimal(subtotal) * Decimal(str(rate))).quantize(Decimal(1), rounding=ROUND_HALF_UP))
    shipping = 0
    total = subtotal + tax + shipping

    return {
        'subtotal': subtotal,
        'tax': tax,
        'shipping': shipping,
        'total': total,
        'tax_rate': rate,
        'subtotal_formatted': format_price(subtotal, currency),
        'tax_formatted': format_price(tax, currency),
        'shipping_formatted': format_price(shipping, currency),
        'total_formatted': format_price(total, currency)
    }

def _escape(value: Any) -> str:
    return html.escape(str(value)) if value is not None else ''

def _status_text(value: Optional[str]) -> str:
    return value.replace('_', ' ').upper() if value else 'N/A'

def render_invoice_html(order: Dict[str, Any], tax_rate: Optional[float] = None) -> str:
    """Render an order as a complete HTML invoice document.

    Args:
        order: Order row as returned by OrderManager
        tax_rate: Optional override of the configured tax rate

    Returns:
        HTML document text with every order value escaped
    """
    summary = get_invoice_summary(order, tax_rate)
    currency = order.get('currency') or settings_conf['default_currency']
    quantity = order.get('quantity') or 1
    number = invoice_number(order['id'])

    shipping_line = (
        f'<p class="muted">{_escape(order["shipping_address"])}</p>' if order.get('shipping_address') else ''
    )
    tracking_line = (
        f'<p><strong>Tracking:</strong> {_escape(order["tracking_number"])}</p>' if order.get('tracking_number') else ''
    )
    delivered_line = (
        f'<p>Delivered: {_escape(format_invoice_date(order["delivered_at"]))}</p>' if order.get('delivered_at') else ''
    )
    category_line = (
        f'<p class="muted">Category: {_escape(order["product_category"])}</p>' if order.get('product_category') else ''
    )

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Invoice {_escape(number)}</title>
<style>
  body {{ font-family: Arial, sans-serif; font-size: 14px; color: #000; max-width: 210mm; margin: 0 auto; padding: 20px; }}
  header {{ display: flex; justify-content: space-between; border-bottom: 3px solid #1a1a1a; padding-bottom: 20px; margin-bottom: 30px; }}
  h1.brand {{ font-size: 32px; letter-spacing: 2px; margin: 0; }}
  .muted {{ color: #666; }}
  .grid {{ display: grid; grid-template-columns: 1fr 1fr; gap: 30px; margin-bottom: 30px; }}
  table {{ width: 100%; border-collapse: collapse; margin-bottom: 30px; }}
  th, td {{ border: 1px solid #ddd; padding: 12px; }}
  th {{ background: #f5f5f5; }}
  td.num, th.num {{ text-align: right; }}
  .totals {{ max-width: 350px; margin-left: auto; }}
  .totals div {{ display: flex; justify-content: space-between; padding: 10px 0; border-bottom: 1px solid #ddd; }}
  .totals .grand {{ font-weight: bold; color: #8451E1; font-size: 16px; }}
  footer {{ border-top: 1px solid #ccc; padding-top: 20px; text-align: center; font-size: 11px; color: #666; }}
</style>
</head>
<body>
<header>
  <div>
    <h1 class="brand">{BRAND_NAME}</h1>
    <p class="muted">{BRAND_TAGLINE}</p>
  </div>
  <div style="text-align: right;">
    <h2>INVOICE</h2>
    <p class="muted">#{_escape(number)}</p>
  </div>
</header>
<section class="grid">
  <div>
    <h3>Invoice Date</h3>
    <p>{_escape(format_invoice_date(order.get('created_at')))}</p>
  </div>
  <div style="text-align: right;">
    <h3>Total Amount</h3>
    <p><strong>{_escape(summary['total_formatted'])}</strong></p>
  </div>
</section>
<section class="grid">
  <div>
    <h3>Bill To</h3>
    <p><strong>{_escape(order.get('customer_name'))}</strong></p>
    <p>{_escape(order.get('customer_email'))}</p>
    {shipping_line}
  </div>
  <div>
    <h3>Shipping</h3>
    <p>Status: {_escape(_status_text(order.get('delivery_status')))}</p>
    {tracking_line}
    {delivered_line}
  </div>
</section>
<table>
  <thead>
    <tr><th>Description</th><th>Qty</th><th class="num">Unit Price</th><th class="num">Amount</th></tr>
  </thead>
  <tbody>
    <tr>
      <td><strong>{_escape(order.get('product_title'))}</strong>{category_line}</td>
      <td style="text-align: center;">{_escape(quantity)}</td>
      <td class="num">{_escape(format_price(summary['subtotal'] // quantity, currency))}</td>
      <td class="num">{_escape(summary['subtotal_formatted'])}</td>
    </tr>
  </tbody>
</table>
<section class="totals">
  <div><span>Subtotal:</span><span>{_escape(summary['subtotal_formatted'])}</span></div>
  <div><span>Tax ({summary['tax_rate'] * 100:g}%):</span><span>{_escape(summary['tax_formatted'])}</span></div>
  <div><span>Shipping:</span><span>Free</span></div>
  <div class="grand"><span>Total:</span><span>{_escape(summary['total_formatted'])}</span></div>
</section>
<section class="grid">
  <div>
    <h4>Payment</h4>
    <p>Payout status: {_escape(_status_text(order.get('payout_status')))}</p>
  </div>
  <div>
    <h4>Order Status</h4>
    <p>{_escape(_status_text(order.get('order_status')))}</p>
  </div>
</section>
<footer>
  <p>Thank you for your order!</p>
  <p>If you have any questions about this invoice, please contact our support team.</p>
  <p>Generated on {_escape(format_invoice_date(datetime.now(timezone.utc)))} &middot; Invoice #{_escape(number)}</p>
</footer>
</body>
</html>
"""

__all__ = [
    'format_price',
    'format_invoice_date',
    'invoice_number',
    'get_invoice_summary',
    'render_invoice_html'
]
