"""Support ticket and dispute endpoints."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import CurrentUser
from support import (
    SupportManager,
    DisputeManager,
    TicketStatus,
    TicketPriority,
    TicketCategory
)
from ..deps import current_member, admin_member

router = APIRouter(tags=["Support"])

class CreateTicketRequest(BaseModel):
    """Request model for opening a ticket."""
    subject: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: TicketCategory
    priority: TicketPriority = TicketPriority.MEDIUM
    order_id: Optional[UUID] = None

class TicketRef(BaseModel):
    ticket_id: UUID

class ListMyTicketsRequest(BaseModel):
    status: Optional[TicketStatus] = None

class ListAllTicketsRequest(BaseModel):
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    category: Optional[TicketCategory] = None
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)

class UpdateTicketRequest(BaseModel):
    ticket_id: UUID
    status: Optional[TicketStatus] = None
    priority: Optional[TicketPriority] = None
    assigned_to: Optional[UUID] = None

class ReplyRequest(BaseModel):
    ticket_id: UUID
    message: str = Field(..., min_length=1)
    is_internal: bool = False

class OpenDisputeRequest(BaseModel):
    order_id: UUID
    reason: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

class DisputeRef(BaseModel):
    dispute_id: UUID

class ListDisputesRequest(BaseModel):
    status: Optional[TicketStatus] = None

class UpdateDisputeRequest(BaseModel):
    dispute_id: UUID
    status: TicketStatus
    resolution: Optional[str] = None

@router.post("/rpc/support.createTicket")
async def create_ticket(request: CreateTicketRequest, user: CurrentUser = Depends(current_member)):
    """Open a support ticket."""
    return await SupportManager().create_ticket(user.id, **request.model_dump())

@router.post("/rpc/support.getTicket")
async def get_ticket(request: TicketRef, user: CurrentUser = Depends(current_member)):
    """Get a ticket with its replies."""
    return await SupportManager().get_ticket(request.ticket_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/support.listMyTickets")
async def list_my_tickets(request: Optional[ListMyTicketsRequest] = None, user: CurrentUser = Depends(current_member)):
    status = request.status if request else None
    return await SupportManager().list_user_tickets(user.id, status)

@router.post("/rpc/support.listAllTickets")
async def list_all_tickets(request: ListAllTicketsRequest, user: CurrentUser = Depends(admin_member)):
    return await SupportManager().list_all_tickets(**request.model_dump())

@router.post("/rpc/support.updateTicket")
async def update_ticket(request: UpdateTicketRequest, user: CurrentUser = Depends(current_member)):
    """Change status, priority or assignee. Owners may only close their ticket."""
    return await SupportManager().update_ticket(
        request.ticket_id,
        user.id,
        is_admin=user.is_admin,
        status=request.status,
        priority=request.priority,
        assigned_to=request.assigned_to
    )

@router.post("/rpc/support.reply")
async def reply_to_ticket(request: ReplyRequest, user: CurrentUser = Depends(current_member)):
    return await SupportManager().reply(
        request.ticket_id,
        user.id,
        user.role,
        request.message,
        is_internal=request.is_internal
    )

@router.post("/rpc/support.getStats")
async def get_ticket_stats(user: CurrentUser = Depends(admin_member)):
    return await SupportManager().get_stats()

@router.post("/rpc/disputes.open")
async def open_dispute(request: OpenDisputeRequest, user: CurrentUser = Depends(current_member)):
    """Open a dispute on an order (buyer or seller)."""
    return await DisputeManager().open_dispute(
        request.order_id,
        user.id,
        request.reason,
        request.description
    )

@router.post("/rpc/disputes.get")
async def get_dispute(request: DisputeRef, user: CurrentUser = Depends(current_member)):
    return await DisputeManager().get_dispute(request.dispute_id, user.id, is_admin=user.is_admin)

@router.post("/rpc/disputes.list")
async def list_disputes(request: Optional[ListDisputesRequest] = None, user: CurrentUser = Depends(admin_member)):
    status = request.status if request else None
    return await DisputeManager().list_disputes(status)

@router.post("/rpc/disputes.updateStatus")
async def update_dispute_status(request: UpdateDisputeRequest, user: CurrentUser = Depends(admin_member)):
    return await DisputeManager().update_dispute_status(
        request.dispute_id,
        request.status,
        request.resolution
    )
