"""Returns and refunds endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import CurrentUser
from refunds import RefundManager, RefundType, ReturnReason, RefundStatus, ReceivedCondition
from ..deps import current_member, seller_member, admin_member

router = APIRouter(tags=["Refunds"])


class ReturnRequest(BaseModel):
    """Return form submitted by the buyer. The reason is required."""
    order_id: UUID
    refund_type: RefundType = RefundType.FULL
    reason: ReturnReason
    description: Optional[str] = Field(None, max_length=2000)
    amount_cents: Optional[int] = Field(None, gt=0)

class RefundRef(BaseModel):
    refund_id: UUID

class RejectRequest(BaseModel):
    refund_id: UUID
    reason: str = Field(..., min_length=1)

class ReceivedRequest(BaseModel):
    refund_id: UUID
    condition: ReceivedCondition

class ListAllRefundsRequest(BaseModel):
    status: Optional[RefundStatus] = None

@router.post("/rpc/refunds.requestReturn")
async def request_return(request: ReturnRequest, user: CurrentUser = Depends(current_member)):
    """Request a return on a delivered order."""
    return await RefundManager().request_return(
        request.order_id,
        user.id,
        request.refund_type,
        request.reason,
        description=request.description,
        amount_cents=request.amount_cents
    )

@router.post("/rpc/refunds.get")
async def get_refund(request: RefundRef, user: CurrentUser = Depends(current_member)):
    return await RefundManager().get_refund(request.refund_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/refunds.listMine")
async def list_my_refunds(user: CurrentUser = Depends(current_member)):
    return await RefundManager().list_buyer_refunds(user.id)

@router.post("/rpc/refunds.listSeller")
async def list_seller_refunds(user: CurrentUser = Depends(seller_member)):
    return await RefundManager().list_seller_refunds(user.id)

@router.post("/rpc/refunds.listAll")
async def list_all_refunds(request: Optional[ListAllRefundsRequest] = None, user: CurrentUser = Depends(admin_member)):
    status = request.status if request else None
    return await RefundManager().list_all_refunds(status)

@router.post("/rpc/refunds.approve")
async def approve_return(request: RefundRef, user: CurrentUser = Depends(seller_member)):
    return await RefundManager().approve_return(request.refund_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/refunds.reject")
async def reject_return(request: RejectRequest, user: CurrentUser = Depends(seller_member)):
    return await RefundManager().reject_return(
        request.refund_id,
        user.id,
        request.reason,
        is_admin=user.is_admin
    )

@router.post("/rpc/refunds.markReceived")
async def mark_return_received(request: ReceivedRequest, user: CurrentUser = Depends(seller_member)):
    return await RefundManager().mark_received(
        request.refund_id,
        user.id,
        request.condition,
        is_admin=user.is_admin
    )

@router.post("/rpc/refunds.complete")
async def complete_refund(request: RefundRef, user: CurrentUser = Depends(seller_member)):
    """Complete an approved return and update the order."""
    return await RefundManager().complete_refund(request.refund_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/refunds.cancel")
async def cancel_return(request: RefundRef, user: CurrentUser = Depends(current_member)):
    return await RefundManager().cancel_return(request.refund_id, user.id)
