"""Listings module for managing marketplace listings.

This module provides functionality for:
- Creating and managing seller listings
- Restocking inventory
- Browsing and filtering the approved catalog
- Admin review of new and edited listings
"""

import logging
from enum import Enum
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any
from uuid import UUID

from config import settings_conf
from database import get_pool
from notifications import NotificationManager, NotificationType

logger = logging.getLogger(__name__)

# User-mutable fields for listings
MUTABLE_FIELDS = {
    'title',
    'description',
    'category',
    'image_url',
    'price_cents',
    'sizes',
    'colors'
}

# System-managed fields (not directly mutable by sellers)
SYSTEM_FIELDS = {
    'id',
    'seller_id',
    'quantity_available',
    'review_status',
    'review_notes',
    'reviewed_by',
    'reviewed_at',
    'created_at',
    'updated_at'
}

MAX_PAGE_SIZE = 100

class ListingCategory(str, Enum):
    MEN_CLOTHING = "men_clothing"
    WOMEN_CLOTHING = "women_clothing"
    MEN_SHOES = "men_shoes"
    WOMEN_SHOES = "women_shoes"
    ACCESSORIES = "accessories"
    MERCH = "merch"
    OTHERS = "others"

class ListingReviewStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVISION_REQUESTED = "revision_requested"

class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_REVISION = "request_revision"

DECISION_STATUS = {
    ReviewDecision.APPROVE: ListingReviewStatus.APPROVED,
    ReviewDecision.REJECT: ListingReviewStatus.REJECTED,
    ReviewDecision.REQUEST_REVISION: ListingReviewStatus.REVISION_REQUESTED
}

DECISION_NOTIFICATION = {
    ReviewDecision.APPROVE: (NotificationType.LISTING_APPROVED, "Listing approved"),
    ReviewDecision.REJECT: (NotificationType.LISTING_REJECTED, "Listing rejected"),
    ReviewDecision.REQUEST_REVISION: (NotificationType.LISTING_REVISION, "Listing needs changes")
}

class ListingError(Exception):
    """Base exception for listing operations."""
    pass

class ListingNotFoundError(ListingError):
    """Raised when a listing is not found."""
    pass

class ListingPermissionError(ListingError):
    """Raised when the caller doesn't own the listing."""
    pass

class InvalidPriceError(ListingError):
    """Raised when a price is not a positive number of cents."""
    pass

class ListingManager:
    """Manager class for handling listing operations."""

    def __init__(self, pool=None, notifications: Optional[NotificationManager] = None):
        """Initialize the listing manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            notifications: Optional notification manager sharing the same pool.
        """
        self.pool = pool
        self.notifications = notifications or NotificationManager(pool)

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_listing(
        self,
        seller_id: UUID,
        title: str,
        category: ListingCategory,
        price_cents: int,
        quantity_available: int = 0,
        description: Optional[str] = None,
        image_url: Optional[str] = None,
        currency: Optional[str] = None,
        sizes: Optional[List[str]] = None,
        colors: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """Create a new listing awaiting admin review.

        Args:
            seller_id: The seller's user ID
            title: Listing title
            category: Product category
            price_cents: Unit price in minor currency units
            quantity_available: Initial stock
            description: Optional description
            image_url: Optional product image URL
            currency: ISO currency code, defaults to the marketplace currency
            sizes: Optional list of offered sizes
            colors: Optional list of offered colors

        Returns:
            Dict containing the created listing

        Raises:
            InvalidPriceError: If price_cents is not positive
            ListingError: If quantity is negative
        """
        if price_cents <= 0:
            raise InvalidPriceError(f"Price must be positive, got {price_cents}")
        if quantity_available < 0:
            raise ListingError("Quantity available cannot be negative")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                INSERT INTO listings (
                    seller_id, title, description, category, image_url,
                    price_cents, currency, sizes, colors, quantity_available
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING *
                ''',
                seller_id,
                title,
                description,
                ListingCategory(category).value,
                image_url,
                price_cents,
                (currency or settings_conf['default_currency']).upper(),
                sizes or [],
                colors or [],
                quantity_available
            )
            logger.info(f"Created listing {row['id']} for seller {seller_id}")
            return dict(row)

    async def get_listing(self, listing_id: UUID) -> Dict[str, Any]:
        """Get a listing by ID.

        Raises:
            ListingNotFoundError: If listing doesn't exist
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM listings WHERE id = $1', listing_id)
            if not row:
                raise ListingNotFoundError(f"Listing {listing_id} not found")
            return dict(row)

    async def get_visible_listing(
        self,
        listing_id: UUID,
        viewer_id: Optional[UUID] = None,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Get a listing as seen by a viewer.

        Listings that aren't approved are only visible to their seller and
        to admins; anyone else is told the listing doesn't exist.

        Raises:
            ListingNotFoundError: If the listing doesn't exist or is hidden
        """
        listing = await self.get_listing(listing_id)
        if listing['review_status'] != ListingReviewStatus.APPROVED.value \
                and not is_admin and listing['seller_id'] != viewer_id:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        return listing

    async def list_seller_listings(self, seller_id: UUID) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT * FROM listings WHERE seller_id = $1 ORDER BY created_at DESC',
                seller_id
            )
            return [dict(r) for r in rows]

    async def _get_owned(self, conn, listing_id: UUID, seller_id: UUID):
        row = await conn.fetchrow('SELECT * FROM listings WHERE id = $1', listing_id)
        if not row:
            raise ListingNotFoundError(f"Listing {listing_id} not found")
        if row['seller_id'] != seller_id:
            raise ListingPermissionError(f"Listing {listing_id} belongs to another seller")
        return row

    async def update_listing(self, listing_id: UUID, seller_id: UUID, **updates) -> Dict[str, Any]:
        """Update a seller's own listing.

        Only fields in MUTABLE_FIELDS may be changed. Editing a rejected listing
        or one with requested revisions sends it back to the review queue.

        Raises:
            ListingError: If trying to update system fields
            ListingNotFoundError: If listing doesn't exist
            ListingPermissionError: If the caller doesn't own the listing
        """
        invalid_fields = set(updates) - MUTABLE_FIELDS
        if invalid_fields:
            raise ListingError(f"Cannot update fields: {', '.join(sorted(invalid_fields))}")

        updates = {k: v for k, v in updates.items() if v is not None}
        if 'price_cents' in updates and updates['price_cents'] <= 0:
            raise InvalidPriceError(f"Price must be positive, got {updates['price_cents']}")
        if 'category' in updates:
            updates['category'] = ListingCategory(updates['category']).value

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                current = await self._get_owned(conn, listing_id, seller_id)
                if not updates:
                    return dict(current)

                set_clauses = [f"{name} = ${idx}" for idx, name in enumerate(updates, start=2)]
                if current['review_status'] in (
                    ListingReviewStatus.REJECTED.value,
                    ListingReviewStatus.REVISION_REQUESTED.value
                ):
                    set_clauses.append(f"review_status = '{ListingReviewStatus.PENDING.value}'")

                row = await conn.fetchrow(
                    f'''
                    UPDATE listings
                    SET {', '.join(set_clauses)}, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    listing_id,
                    *updates.values()
                )
                return dict(row)

    async def delete_listing(self, listing_id: UUID, user_id: UUID, is_admin: bool = False) -> None:
        """Delete a listing that has never been ordered.

        Raises:
            ListingNotFoundError: If listing doesn't exist
            ListingPermissionError: If the caller neither owns it nor is an admin
            ListingError: If orders reference the listing
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow('SELECT seller_id FROM listings WHERE id = $1', listing_id)
                if not row:
                    raise ListingNotFoundError(f"Listing {listing_id} not found")
                if row['seller_id'] != user_id and not is_admin:
                    raise ListingPermissionError(f"Listing {listing_id} belongs to another seller")

                has_orders = await conn.fetchval(
                    'SELECT EXISTS(SELECT 1 FROM orders WHERE listing_id = $1)',
                    listing_id
                )
                if has_orders:
                    raise ListingError(
                        f"Listing {listing_id} has orders; set its stock to zero instead"
                    )

                await conn.execute('DELETE FROM listings WHERE id = $1', listing_id)
                logger.info(f"Deleted listing {listing_id}")

    async def restock(self, listing_id: UUID, seller_id: UUID, quantity: int) -> Dict[str, Any]:
        """Add stock to a seller's own listing."""
        if quantity <= 0:
            raise ListingError("Restock quantity must be positive")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await self._get_owned(conn, listing_id, seller_id)
                row = await conn.fetchrow(
                    '''
                    UPDATE listings
                    SET quantity_available = quantity_available + $2,
                        updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    listing_id,
                    quantity
                )
                return dict(row)

    async def browse(
        self,
        category: Optional[ListingCategory] = None,
        search: Optional[str] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Dict[str, Any]:
        """Browse the public catalog of approved, in-stock listings."""
        await self.ensure_pool()

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        conditions = [
            f"review_status = '{ListingReviewStatus.APPROVED.value}'",
            'quantity_available > 0'
        ]
        params: List[Any] = []
        if category:
            params.append(ListingCategory(category).value)
            conditions.append(f"category = ${len(params)}")
        if search:
            params.append(f"%{search}%")
            conditions.append(f"title ILIKE ${len(params)}")
        if min_price is not None:
            params.append(min_price)
            conditions.append(f"price_cents >= ${len(params)}")
        if max_price is not None:
            params.append(max_price)
            conditions.append(f"price_cents <= ${len(params)}")
        where = ' AND '.join(conditions)

        async with self.pool.acquire() as conn:
            total = await conn.fetchval(f'SELECT COUNT(*) FROM listings WHERE {where}', *params)
            rows = await conn.fetch(
                f'''
                SELECT * FROM listings
                WHERE {where}
                ORDER BY created_at DESC
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                ''',
                *params,
                limit,
                offset
            )
            return {
                'listings': [dict(r) for r in rows],
                'total_count': total,
                'limit': limit,
                'offset': offset
            }

    async def list_pending_reviews(self) -> List[Dict[str, Any]]:
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM listings
                WHERE review_status = $1
                ORDER BY updated_at ASC
                ''',
                ListingReviewStatus.PENDING.value
            )
            return [dict(r) for r in rows]

    async def review_listing(
        self,
        listing_id: UUID,
        admin_id: UUID,
        decision: ReviewDecision,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Record an admin review decision and tell the seller.

        Raises:
            ListingError: If a rejection or revision request has no notes
            ListingNotFoundError: If listing doesn't exist
        """
        decision = ReviewDecision(decision)
        if decision != ReviewDecision.APPROVE and not (notes and notes.strip()):
            raise ListingError("Notes are required when rejecting or requesting revisions")

        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                UPDATE listings
                SET review_status = $2,
                    review_notes = $3,
                    reviewed_by = $4,
                    reviewed_at = $5,
                    updated_at = now()
                WHERE id = $1
                RETURNING *
                ''',
                listing_id,
                DECISION_STATUS[decision].value,
                notes,
                admin_id,
                datetime.now(timezone.utc)
            )
            if not row:
                raise ListingNotFoundError(f"Listing {listing_id} not found")

        listing = dict(row)
        notification_type, title = DECISION_NOTIFICATION[decision]
        message = f'"{listing["title"]}" was reviewed: {decision.value.replace("_", " ")}.'
        if notes:
            message += f" Notes: {notes}"
        await self.notifications.send_notification(
            listing['seller_id'], notification_type, title, message
        )
        logger.info(f"Listing {listing_id} reviewed by {admin_id}: {decision.value}")
        return listing

__all__ = [
    'ListingManager',
    'ListingCategory',
    'ListingReviewStatus',
    'ReviewDecision',
    'ListingError',
    'ListingNotFoundError',
    'ListingPermissionError',
    'InvalidPriceError',
    'MUTABLE_FIELDS',
    'SYSTEM_FIELDS'
]
