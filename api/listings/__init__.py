"""Listings API endpoints.

Sellers manage their own listings, admins review them, and the public
catalog shows approved listings that are in stock.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from auth import CurrentUser
from listings import ListingManager, ListingCategory, ReviewDecision
from users import UserRole
from ..deps import member, current_member, admin_member, optional_member

router = APIRouter(tags=["Listings"])

seller_only = member(UserRole.SELLER)

class CreateListingRequest(BaseModel):
    """Request model for creating a listing."""
    title: str = Field(..., min_length=1, max_length=200)
    category: ListingCategory
    price_cents: int = Field(..., gt=0)
    quantity_available: int = Field(0, ge=0)
    description: Optional[str] = None
    image_url: Optional[str] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None

class UpdateListingRequest(BaseModel):
    """Request model for updating a listing."""
    listing_id: UUID
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[ListingCategory] = None
    image_url: Optional[str] = None
    price_cents: Optional[int] = Field(None, gt=0)
    sizes: Optional[List[str]] = None
    colors: Optional[List[str]] = None

class ListingRef(BaseModel):
    listing_id: UUID

class RestockRequest(BaseModel):
    listing_id: UUID
    quantity: int = Field(..., gt=0)

class BrowseRequest(BaseModel):
    """Catalog filters."""
    category: Optional[ListingCategory] = None
    search: Optional[str] = None
    min_price: Optional[int] = Field(None, ge=0)
    max_price: Optional[int] = Field(None, ge=0)
    limit: int = Field(20, ge=1, le=100)
    offset: int = Field(0, ge=0)

class ReviewRequest(BaseModel):
    listing_id: UUID
    decision: ReviewDecision
    notes: Optional[str] = None

@router.post("/rpc/listings.create")
async def create_listing(request: CreateListingRequest, user: CurrentUser = Depends(seller_only)):
    """Create a listing; it is hidden from the catalog until approved."""
    return await ListingManager().create_listing(user.id, **request.model_dump())

@router.post("/rpc/listings.get")
async def get_listing(request: ListingRef, user: Optional[CurrentUser] = Depends(optional_member)):
    """Get a listing. Unapproved listings are visible to their seller and admins only."""
    return await ListingManager().get_visible_listing(
        request.listing_id,
        viewer_id=user.id if user else None,
        is_admin=bool(user and user.is_admin)
    )

@router.post("/rpc/listings.listMine")
async def list_my_listings(user: CurrentUser = Depends(seller_only)):
    return await ListingManager().list_seller_listings(user.id)

@router.post("/rpc/listings.update")
async def update_listing(request: UpdateListingRequest, user: CurrentUser = Depends(seller_only)):
    """Update the caller's listing."""
    updates = request.model_dump(exclude={'listing_id'}, exclude_none=True)
    return await ListingManager().update_listing(request.listing_id, user.id, **updates)

@router.post("/rpc/listings.delete")
async def delete_listing(request: ListingRef, user: CurrentUser = Depends(current_member)):
    """Delete a listing (owner or admin)."""
    await ListingManager().delete_listing(request.listing_id, user.id, is_admin=user.is_admin)
    return {"success": True}

@router.post("/rpc/listings.restock")
async def restock_listing(request: RestockRequest, user: CurrentUser = Depends(seller_only)):
    return await ListingManager().restock(request.listing_id, user.id, request.quantity)

@router.post("/rpc/listings.browse")
async def browse_listings(request: BrowseRequest):
    """Browse approved, in-stock listings."""
    return await ListingManager().browse(**request.model_dump())

@router.post("/rpc/listings.pendingReviews")
async def list_pending_reviews(user: CurrentUser = Depends(admin_member)):
    return await ListingManager().list_pending_reviews()

@router.post("/rpc/listings.review")
async def review_listing(request: ReviewRequest, user: CurrentUser = Depends(admin_member)):
    """Approve, reject or request revisions on a listing."""
    return await ListingManager().review_listing(
        request.listing_id,
        user.id,
        request.decision,
        request.notes
    )
