"""Tests for listing management and review."""

import uuid

import pytest

from listings import (
    ListingManager,
    ListingCategory,
    ReviewDecision,
    ListingError,
    ListingNotFoundError,
    ListingPermissionError,
    InvalidPriceError
)
from notifications import NotificationType

def listing(seller_id, **overrides):
    row = {
        'id': uuid.uuid4(),
        'seller_id': seller_id,
        'title': 'Ankara Bomber Jacket',
        'category': 'men_clothing',
        'price_cents': 4500000,
        'quantity_available': 3,
        'review_status': 'approved'
    }
    row.update(overrides)
    return row

@pytest.fixture
def manager(pool, notifier):
    return ListingManager(pool, notifications=notifier)

@pytest.mark.asyncio
async def test_create_uses_default_currency(manager, conn, seller_id):
    conn.fetchrow.return_value = listing(seller_id, review_status='pending')

    await manager.create_listing(seller_id, 'Ankara Bomber Jacket', ListingCategory.MEN_CLOTHING, 4500000, 3)

    args = conn.fetchrow.call_args.args
    assert args[4] == 'men_clothing'
    assert args[7] == 'NGN'
    assert args[8:] == ([], [], 3)

@pytest.mark.asyncio
@pytest.mark.parametrize('price,quantity,error', [
    (0, 1, InvalidPriceError),
    (-100, 1, InvalidPriceError),
    (100, -1, ListingError)
])
async def test_create_rejects_bad_values(manager, conn, seller_id, price, quantity, error):
    with pytest.raises(error):
        await manager.create_listing(seller_id, 'Cap', ListingCategory.ACCESSORIES, price, quantity)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_update_rejects_system_fields(manager, seller_id):
    with pytest.raises(ListingError):
        await manager.update_listing(uuid.uuid4(), seller_id, review_status='approved')

@pytest.mark.asyncio
async def test_update_other_sellers_listing(manager, conn, seller_id):
    conn.fetchrow.return_value = listing(uuid.uuid4())

    with pytest.raises(ListingPermissionError):
        await manager.update_listing(uuid.uuid4(), seller_id, title='Mine now')

@pytest.mark.asyncio
async def test_editing_rejected_listing_requeues_review(manager, conn, seller_id):
    current = listing(seller_id, review_status='rejected')
    conn.fetchrow.side_effect = [current, dict(current, price_cents=4000000, review_status='pending')]

    result = await manager.update_listing(current['id'], seller_id, price_cents=4000000, title=None)

    sql = conn.fetchrow.call_args.args[0]
    assert 'price_cents = $2' in sql
    assert "review_status = 'pending'" in sql
    assert conn.fetchrow.call_args.args[1:] == (current['id'], 4000000)
    assert result['review_status'] == 'pending'

@pytest.mark.asyncio
async def test_delete_with_orders_is_refused(manager, conn, seller_id):
    conn.fetchrow.return_value = {'seller_id': seller_id}
    conn.fetchval.return_value = True

    with pytest.raises(ListingError):
        await manager.delete_listing(uuid.uuid4(), seller_id)
    conn.execute.assert_not_called()

@pytest.mark.asyncio
async def test_admin_may_delete_any_listing(manager, conn, admin_id):
    listing_id = uuid.uuid4()
    conn.fetchrow.return_value = {'seller_id': uuid.uuid4()}
    conn.fetchval.return_value = False

    await manager.delete_listing(listing_id, admin_id, is_admin=True)

    conn.execute.assert_awaited_once_with('DELETE FROM listings WHERE id = $1', listing_id)

@pytest.mark.asyncio
async def test_browse_only_shows_approved_stock(manager, conn):
    conn.fetchval.return_value = 0

    result = await manager.browse(category=ListingCategory.MERCH, max_price=5000, limit=500)

    sql = conn.fetch.call_args.args[0]
    assert "review_status = 'approved'" in sql
    assert 'quantity_available > 0' in sql
    assert 'price_cents <= $2' in sql
    assert conn.fetch.call_args.args[1:] == ('merch', 5000, 100, 0)
    assert result['limit'] == 100

@pytest.mark.asyncio
async def test_rejection_needs_notes(manager, admin_id):
    with pytest.raises(ListingError):
        await manager.review_listing(uuid.uuid4(), admin_id, ReviewDecision.REJECT, notes='  ')

@pytest.mark.asyncio
async def test_review_notifies_seller(manager, conn, notifier, seller_id, admin_id):
    row = listing(seller_id, review_status='revision_requested')
    conn.fetchrow.return_value = row

    await manager.review_listing(row['id'], admin_id, ReviewDecision.REQUEST_REVISION, notes='Add a size chart')

    assert conn.fetchrow.call_args.args[2] == 'revision_requested'
    user_id, notification_type, title, message = notifier.send_notification.call_args.args
    assert user_id == seller_id
    assert notification_type == NotificationType.LISTING_REVISION
    assert 'Add a size chart' in message

@pytest.mark.asyncio
async def test_review_missing_listing(manager, conn, notifier, admin_id):
    with pytest.raises(ListingNotFoundError):
        await manager.review_listing(uuid.uuid4(), admin_id, ReviewDecision.APPROVE)
    notifier.send_notification.assert_not_called()

@pytest.mark.asyncio
async def test_pending_listing_hidden_from_other_viewers(manager, conn, seller_id, buyer_id):
    conn.fetchrow.return_value = listing(seller_id, review_status='pending')

    with pytest.raises(ListingNotFoundError):
        await manager.get_visible_listing(uuid.uuid4(), viewer_id=buyer_id)
    with pytest.raises(ListingNotFoundError):
        await manager.get_visible_listing(uuid.uuid4())

@pytest.mark.asyncio
@pytest.mark.parametrize('review_status', ['pending', 'rejected', 'revision_requested'])
async def test_unapproved_listing_visible_to_owner_and_admin(manager, conn, seller_id, admin_id, review_status):
    conn.fetchrow.return_value = listing(seller_id, review_status=review_status)

    owned = await manager.get_visible_listing(uuid.uuid4(), viewer_id=seller_id)
    reviewed = await manager.get_visible_listing(uuid.uuid4(), viewer_id=admin_id, is_admin=True)

    assert owned['review_status'] == review_status
    assert reviewed['seller_id'] == seller_id

@pytest.mark.asyncio
async def test_approved_listing_is_public(manager, conn, seller_id):
    conn.fetchrow.return_value = listing(seller_id)

    row = await manager.get_visible_listing(uuid.uuid4())

    assert row['title'] == 'Ankara Bomber Jacket'
