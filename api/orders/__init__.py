"""Orders API endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from auth import CurrentUser
from invoices import invoice_number, render_invoice_html
from orders import OrderManager, OrderStatus
from ..contact import EMAIL_PATTERN
from ..deps import current_member, seller_member, admin_member

router = APIRouter(tags=["Orders"])


class CreateOrderRequest(BaseModel):
    """Request model for placing an order."""
    listing_id: UUID
    quantity: int = Field(1, gt=0)
    customer_name: str = Field(..., min_length=1)
    customer_email: str = Field(..., pattern=EMAIL_PATTERN)
    shipping_address: str = Field(..., min_length=1)

class OrderRef(BaseModel):
    order_id: UUID

class ListOrdersRequest(BaseModel):
    status: Optional[OrderStatus] = None

class ShipOrderRequest(BaseModel):
    order_id: UUID
    tracking_number: str = Field(..., min_length=1)

class CancelOrderRequest(BaseModel):
    order_id: UUID
    reason: Optional[str] = None

@router.post("/rpc/orders.create", tags=["Order Creation"])
async def create_order(request: CreateOrderRequest, user: CurrentUser = Depends(current_member)):
    """Place an order for a listing."""
    return await OrderManager().create_order(
        buyer_id=user.id,
        listing_id=request.listing_id,
        quantity=request.quantity,
        customer_name=request.customer_name,
        customer_email=request.customer_email,
        shipping_address=request.shipping_address
    )

@router.post("/rpc/orders.get")
async def get_order(request: OrderRef, user: CurrentUser = Depends(current_member)):
    return await OrderManager().get_order(request.order_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/orders.listMine")
async def list_my_orders(request: Optional[ListOrdersRequest] = None, user: CurrentUser = Depends(current_member)):
    """List orders the caller placed."""
    status = request.status if request else None
    return await OrderManager().list_buyer_orders(user.id, status)

@router.post("/rpc/orders.listSeller")
async def list_seller_orders(request: Optional[ListOrdersRequest] = None, user: CurrentUser = Depends(seller_member)):
    """List orders for the caller's listings."""
    status = request.status if request else None
    return await OrderManager().list_seller_orders(user.id, status)

@router.post("/rpc/orders.confirm")
async def confirm_order(request: OrderRef, user: CurrentUser = Depends(seller_member)):
    return await OrderManager().confirm_order(request.order_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/orders.startProcessing")
async def start_processing(request: OrderRef, user: CurrentUser = Depends(seller_member)):
    return await OrderManager().start_processing(request.order_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/orders.ship")
async def ship_order(request: ShipOrderRequest, user: CurrentUser = Depends(seller_member)):
    """Mark an order shipped with its tracking number."""
    return await OrderManager().ship_order(
        request.order_id,
        user.id,
        request.tracking_number,
        is_admin=user.is_admin
    )

@router.post("/rpc/orders.markDelivered")
async def mark_delivered(request: OrderRef, user: CurrentUser = Depends(current_member)):
    """Confirm delivery (buyer or admin); starts the escrow hold."""
    return await OrderManager().mark_delivered(request.order_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/orders.cancel")
async def cancel_order(request: CancelOrderRequest, user: CurrentUser = Depends(current_member)):
    """Cancel an order that hasn't shipped."""
    return await OrderManager().cancel_order(
        request.order_id,
        user.id,
        reason=request.reason,
        is_admin=user.is_admin
    )

@router.post("/rpc/orders.history")
async def get_order_history(request: OrderRef, user: CurrentUser = Depends(current_member)):
    return await OrderManager().get_history(request.order_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/orders.markPayoutPaid")
async def mark_payout_paid(request: OrderRef, user: CurrentUser = Depends(admin_member)):
    """Record that a released payout was paid to the seller."""
    return await OrderManager().mark_payout_paid(request.order_id)

@router.get("/orders/{order_id}/invoice")
async def download_invoice(order_id: UUID, user: CurrentUser = Depends(current_member)):
    """Download an order invoice as an HTML document."""
    order = await OrderManager().get_order(order_id, user.id, is_admin=user.is_admin)
    return Response(
        content=render_invoice_html(order),
        media_type="text/html",
        headers={
            "Content-Disposition": f"attachment; filename=invoice-{invoice_number(order_id)}.html"
        }
    )
