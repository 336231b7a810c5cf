"""Tests for the HTTP layer: auth, validation and error mapping."""

import uuid
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from api import app
from conftest import FakeConnection, FakePool, bearer
from config import settings_conf
from database import DatabaseError
from listings import ListingNotFoundError
from orders import OrderNotFoundError, OrderPermissionError, InvalidTransitionError
from refunds import RefundExistsError
from reports import ReportFile
from users import UserRole

@pytest.fixture
def client():
    return TestClient(app)

@pytest.fixture
def profile():
    """Overrides applied to the stored profile of every authenticated caller."""
    return {'status': 'active'}

@pytest.fixture(autouse=True)
def users(profile):
    async def ensure_user(user_id, email, role):
        return {'id': user_id, 'role': UserRole(role).value, 'email': email, **profile}

    with patch('api.deps.UserManager') as manager_cls:
        manager_cls.return_value.ensure_user = AsyncMock(side_effect=ensure_user)
        yield manager_cls

def manager_mock(path):
    """Patch a manager class used by a router and return its instance."""
    patcher = patch(path)
    manager_cls = patcher.start()
    return patcher, manager_cls.return_value

@pytest.fixture
def orders():
    patcher, manager = manager_mock('api.orders.OrderManager')
    yield manager
    patcher.stop()

def test_missing_token_is_rejected(client):
    response = client.post('/rpc/orders.listMine', json={})
    assert response.status_code in (401, 403)

def test_expired_token(client):
    headers = bearer(uuid.uuid4(), UserRole.BUYER, expires_in=timedelta(seconds=-10))
    response = client.post('/rpc/orders.listMine', json={}, headers=headers)
    assert response.status_code == 401

def test_wrong_role(client):
    response = client.post('/rpc/analytics.dashboard', json={}, headers=bearer(uuid.uuid4(), UserRole.BUYER))
    assert response.status_code == 403

def test_suspended_account(client, profile, orders):
    profile['status'] = 'suspended'
    response = client.post('/rpc/orders.listMine', json={}, headers=bearer(uuid.uuid4(), UserRole.BUYER))
    assert response.status_code == 403
    orders.list_buyer_orders.assert_not_called()

def test_demoted_seller_cannot_create_listings(client, profile):
    profile['role'] = 'buyer'
    with patch('api.listings.ListingManager') as manager_cls:
        response = client.post(
            '/rpc/listings.create',
            json={'title': 'Adire Shirt', 'category': 'men_clothing', 'price_cents': 1500000},
            headers=bearer(uuid.uuid4(), UserRole.SELLER)
        )
    assert response.status_code == 403
    manager_cls.return_value.create_listing.assert_not_called()

def test_promoted_admin_is_recognised(client, profile):
    profile['role'] = 'admin'
    with patch('api.users.UserManager') as manager_cls:
        manager_cls.return_value.list_users = AsyncMock(return_value=[])
        response = client.post('/rpc/users.list', json={}, headers=bearer(uuid.uuid4(), UserRole.BUYER))
    assert response.status_code == 200
    assert response.json() == []

def test_anonymous_listing_lookup(client):
    listing_id = uuid.uuid4()
    with patch('api.listings.ListingManager') as manager_cls:
        manager_cls.return_value.get_visible_listing = AsyncMock(side_effect=ListingNotFoundError("Listing not found"))
        response = client.post('/rpc/listings.get', json={'listing_id': str(listing_id)})

    assert response.status_code == 404
    call = manager_cls.return_value.get_visible_listing.call_args
    assert call.args == (listing_id,)
    assert call.kwargs == {'viewer_id': None, 'is_admin': False}

def test_listing_lookup_passes_viewer(client):
    seller_id = uuid.uuid4()
    with patch('api.listings.ListingManager') as manager_cls:
        manager_cls.return_value.get_visible_listing = AsyncMock(return_value={'seller_id': str(seller_id)})
        response = client.post(
            '/rpc/listings.get',
            json={'listing_id': str(uuid.uuid4())},
            headers=bearer(seller_id, UserRole.SELLER)
        )

    assert response.status_code == 200
    assert manager_cls.return_value.get_visible_listing.call_args.kwargs == {'viewer_id': seller_id, 'is_admin': False}

def test_upload_read_is_capped(client):
    limit = settings_conf['max_upload_bytes']
    with patch('api.users.UserManager') as manager_cls:
        manager_cls.return_value.save_profile_picture = AsyncMock(return_value={})
        response = client.post(
            '/users/me/profile-picture',
            files={'file': ('me.png', b'\x00' * (limit + 4096), 'image/png')},
            headers=bearer(uuid.uuid4(), UserRole.BUYER)
        )

    assert response.status_code == 200
    filename, content = manager_cls.return_value.save_profile_picture.call_args.args[1:]
    assert filename == 'me.png'
    assert len(content) == limit + 1

def test_list_my_orders(client, orders):
    buyer_id = uuid.uuid4()
    orders.list_buyer_orders = AsyncMock(return_value=[])

    response = client.post('/rpc/orders.listMine', json={'status': 'shipped'}, headers=bearer(buyer_id, UserRole.BUYER))

    assert response.status_code == 200
    assert response.json() == []
    args = orders.list_buyer_orders.call_args.args
    assert args[0] == buyer_id
    assert args[1] == 'shipped'

def test_buyer_cannot_ship(client, orders):
    response = client.post(
        '/rpc/orders.ship',
        json={'order_id': str(uuid.uuid4()), 'tracking_number': 'X1'},
        headers=bearer(uuid.uuid4(), UserRole.BUYER)
    )
    assert response.status_code == 403

def test_order_email_is_validated(client, orders):
    response = client.post(
        '/rpc/orders.create',
        json={
            'listing_id': str(uuid.uuid4()),
            'quantity': 1,
            'customer_name': 'Ada',
            'customer_email': 'not-an-email',
            'shipping_address': 'Lagos'
        },
        headers=bearer(uuid.uuid4(), UserRole.BUYER)
    )
    assert response.status_code == 422

@pytest.mark.parametrize('error,status', [
    (OrderNotFoundError("Order not found"), 404),
    (OrderPermissionError("Not allowed"), 403),
    (InvalidTransitionError('order', 'shipped', 'canceled'), 400),
    (DatabaseError("pool closed"), 503)
])
def test_domain_errors_map_to_status(client, orders, error, status):
    orders.get_order = AsyncMock(side_effect=error)

    response = client.post('/rpc/orders.get', json={'order_id': str(uuid.uuid4())}, headers=bearer(uuid.uuid4(), UserRole.BUYER))

    assert response.status_code == status
    assert 'detail' in response.json()

def test_unexpected_errors_are_500(orders):
    orders.get_order = AsyncMock(side_effect=RuntimeError("boom"))
    client = TestClient(app, raise_server_exceptions=False)

    response = client.post('/rpc/orders.get', json={'order_id': str(uuid.uuid4())}, headers=bearer(uuid.uuid4(), UserRole.BUYER))

    assert response.status_code == 500
    assert response.json() == {'detail': 'Internal server error'}

def test_invoice_download(client, orders):
    order_id = uuid.UUID('a1b2c3d4-0000-4000-8000-000000000000')
    buyer_id = uuid.uuid4()
    orders.get_order = AsyncMock(return_value={
        'id': order_id,
        'buyer_id': buyer_id,
        'product_title': 'Aso Oke Cap',
        'quantity': 1,
        'amount_cents': 500000,
        'currency': 'NGN',
        'order_status': 'delivered'
    })

    response = client.get(f'/orders/{order_id}/invoice', headers=bearer(buyer_id, UserRole.BUYER))

    assert response.status_code == 200
    assert response.headers['content-type'].startswith('text/html')
    assert response.headers['content-disposition'] == 'attachment; filename=invoice-INV-A1B2C3D4.html'
    assert 'Aso Oke Cap' in response.text

def test_return_without_reason_is_422(client):
    with patch('api.refunds.RefundManager') as manager_cls:
        response = client.post(
            '/rpc/refunds.requestReturn',
            json={'order_id': str(uuid.uuid4()), 'refund_type': 'full'},
            headers=bearer(uuid.uuid4(), UserRole.BUYER)
        )
    assert response.status_code == 422
    manager_cls.return_value.request_return.assert_not_called()

def test_active_return_conflict(client):
    with patch('api.refunds.RefundManager') as manager_cls:
        manager_cls.return_value.request_return = AsyncMock(side_effect=RefundExistsError("already open"))
        response = client.post(
            '/rpc/refunds.requestReturn',
            json={'order_id': str(uuid.uuid4()), 'reason': 'damaged'},
            headers=bearer(uuid.uuid4(), UserRole.BUYER)
        )
    assert response.status_code == 409

def test_mark_read_reports_new_unread_count(client):
    user_id = uuid.uuid4()
    ids = [str(uuid.uuid4()), str(uuid.uuid4())]
    with patch('api.notifications.NotificationManager') as manager_cls:
        manager = manager_cls.return_value
        manager.mark_read = AsyncMock(return_value=2)
        manager.get_unread_count = AsyncMock(return_value=1)
        response = client.post(
            '/rpc/notifications.markRead',
            json={'notification_ids': ids},
            headers=bearer(user_id, UserRole.BUYER)
        )

    assert response.status_code == 200
    assert response.json() == {'updated': 2, 'unread_count': 1}
    assert [str(i) for i in manager.mark_read.call_args.args[1]] == ids

def test_unread_count(client):
    with patch('api.notifications.NotificationManager') as manager_cls:
        manager_cls.return_value.get_unread_count = AsyncMock(return_value=4)
        response = client.post('/rpc/notifications.getUnreadCount', headers=bearer(uuid.uuid4(), UserRole.SELLER))
    assert response.json() == {'unread_count': 4}

def test_seller_summary_is_scoped_to_caller(client):
    seller_id = uuid.uuid4()
    with patch('api.analytics.AnalyticsService') as service_cls:
        service_cls.return_value.get_seller_summary = AsyncMock(return_value={'seller_id': str(seller_id)})
        response = client.post(
            '/rpc/analytics.sellerSummary',
            json={'seller_id': str(uuid.uuid4())},
            headers=bearer(seller_id, UserRole.SELLER)
        )
    assert response.status_code == 200
    assert service_cls.return_value.get_seller_summary.call_args.args[0] == seller_id

def test_report_download(client):
    report = ReportFile(b'day,order_count\n', 'text/csv', 'sales_summary_20250501_20250531.csv')
    with patch('api.analytics.ReportService') as service_cls:
        service_cls.return_value.generate_report = AsyncMock(return_value=report)
        response = client.get(
            '/reports/sales_summary?format=csv',
            headers=bearer(uuid.uuid4(), UserRole.ADMIN)
        )
    assert response.status_code == 200
    assert response.content == b'day,order_count\n'
    assert response.headers['content-disposition'] == 'attachment; filename=sales_summary_20250501_20250531.csv'

def test_unknown_report_type(client):
    response = client.get('/reports/weather', headers=bearer(uuid.uuid4(), UserRole.ADMIN))
    assert response.status_code == 422

@pytest.mark.parametrize('field,value', [
    ('email', 'nobody'),
    ('message', 'too short'),
    ('name', '   ')
])
def test_contact_validation(client, field, value):
    payload = {
        'name': 'Ngozi',
        'email': 'ngozi@example.com',
        'subject': 'Wholesale',
        'message': 'Do you offer wholesale pricing?',
        'category': 'general'
    }
    payload[field] = value
    response = client.post('/api/contact', json=payload)
    assert response.status_code == 422

def test_contact_missing_field(client):
    response = client.post('/api/contact', json={'name': 'Ngozi', 'email': 'ngozi@example.com'})
    assert response.status_code == 422

def test_contact_is_stored(client):
    conn = FakeConnection()
    conn.fetchval.return_value = 42
    with patch('api.contact.get_pool', AsyncMock(return_value=FakePool(conn))):
        response = client.post('/api/contact', json={
            'name': 'Ngozi',
            'email': 'ngozi@example.com',
            'subject': 'Wholesale',
            'message': 'Do you offer wholesale pricing?',
            'category': 'general'
        })
    assert response.status_code == 200
    assert response.json() == {'success': True, 'id': 42}
    assert 'INSERT INTO contact_messages' in conn.fetchval.call_args.args[0]

def test_health_reports_database_outage(client):
    with patch('api.system.check_connection', AsyncMock(return_value=False)):
        response = client.get('/system/health')
    assert response.status_code == 200
    body = response.json()
    assert body['status'] == 'unhealthy'
    assert body['database_status'] == 'unavailable'
