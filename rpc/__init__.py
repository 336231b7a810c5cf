"""RPC client for the marketplace API.

Procedures are exposed by the API as ``POST /rpc/<namespace>.<procedure>``
with keyword arguments as the JSON body. Each procedure is declared on
``MarketplaceRPC`` as an ``RPCMethod`` descriptor, so calling
``client.get_unread_count()`` posts to ``/rpc/notifications.getUnreadCount``.
"""
import json
import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10

class RPCError(Exception):
    """Base exception for RPC errors"""
    def __init__(self, message: str, code: Optional[int] = None, procedure: Optional[str] = None):
        self.code = code
        self.procedure = procedure
        self.detail = message
        super().__init__(f"RPC Error [{code}] in {procedure}: {message}" if code else message)

class ServerConnectionError(RPCError):
    """Raised when the API can't be reached or answers with something unreadable"""
    pass

class AuthenticationError(RPCError):
    """Raised when the API rejects the bearer token"""
    pass

class ProcedureError(RPCError):
    """Raised when a procedure fails on the server

    Common codes:
    400 - Invalid request or status change
    403 - Caller lacks permission
    404 - Record not found
    409 - Conflicting record (e.g. an active return already exists)
    422 - Input validation failed
    """
    ERROR_MESSAGES = {
        400: "Bad request",
        403: "Permission denied",
        404: "Not found",
        409: "Conflict",
        422: "Validation failed",
        500: "Internal server error",
    }

    def __init__(self, code: int, procedure: str, detail: Any):
        standard_msg = self.ERROR_MESSAGES.get(code, "Procedure failed")
        message = detail if isinstance(detail, str) else json.dumps(detail, default=str)
        super().__init__(f"{standard_msg} - {message}", code, procedure)
        self.detail = detail

class RPCMethod:
    """Descriptor class for RPC procedures"""
    def __init__(self, procedure: str):
        self.procedure = procedure

    def __get__(self, obj, objtype=None):
        if obj is None:
            return self

        def caller(**kwargs) -> Any:
            return obj._call_method(self.procedure, **kwargs)

        caller.__name__ = self.procedure
        return caller

class MarketplaceRPC:
    """Marketplace RPC client"""

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT):
        """Initialize RPC client.

        Args:
            base_url: API root, e.g. http://localhost:8000
            token: Optional bearer token for authenticated procedures
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

        self.session = requests.Session()
        self.session.headers['content-type'] = 'application/json'
        if token:
            self.set_token(token)

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self.session.headers['authorization'] = f"Bearer {token}"
        else:
            self.session.headers.pop('authorization', None)

    def _call_method(self, procedure: str, **kwargs) -> Any:
        """Call a procedure on the API

        Args:
            procedure: Procedure name, e.g. 'orders.get'
            **kwargs: Procedure input

        Returns:
            Decoded JSON result

        Raises:
            ServerConnectionError: Connection failed, timed out or the body wasn't JSON
            AuthenticationError: Bearer token missing or rejected
            ProcedureError: The procedure returned an error status
        """
        url = f"{self.base_url}/rpc/{procedure}"
        body = json.dumps({k: v for k, v in kwargs.items() if v is not None}, default=str)
        response = self._send('POST', url, procedure, data=body)
        return self._decode(response, procedure)

    def download(self, path: str, **params) -> bytes:
        """GET a file endpoint such as a report or invoice, returning its bytes"""
        url = f"{self.base_url}/{path.lstrip('/')}"
        response = self._send('GET', url, path, params={k: v for k, v in params.items() if v is not None})
        if response.status_code >= 400:
            self._decode(response, path)
        return response.content

    def _send(self, http_method: str, url: str, procedure: str, **kwargs) -> requests.Response:
        try:
            return self.session.request(http_method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise ServerConnectionError(
                f"Request timed out after {self.timeout} seconds", procedure=procedure
            ) from e
        except requests.exceptions.ConnectionError as e:
            raise ServerConnectionError(
                f"Failed to connect to marketplace API at {self.base_url}", procedure=procedure
            ) from e
        except requests.exceptions.RequestException as e:
            raise ServerConnectionError(
                f"Request failed: {str(e)}", procedure=procedure
            ) from e

    def _decode(self, response: requests.Response, procedure: str) -> Any:
        # Check for auth error
        if response.status_code == 401:
            raise AuthenticationError("Authentication failed - check the bearer token", 401, procedure)

        # Try to parse response even if status code is error
        try:
            result = response.json()
        except ValueError as e:
            if response.status_code >= 400:
                raise ProcedureError(response.status_code, procedure, response.text or response.reason) from e
            raise ServerConnectionError(
                f"Invalid response format: {str(e)}", response.status_code, procedure
            ) from e

        if response.status_code >= 400:
            detail = result.get('detail', result) if isinstance(result, dict) else result
            logger.debug(f"Procedure {procedure} failed with {response.status_code}: {detail}")
            raise ProcedureError(response.status_code, procedure, detail)

        return result

    # Define RPC procedures as descriptors
    # Users
    get_me = RPCMethod('users.me')
    update_profile = RPCMethod('users.updateProfile')
    list_users = RPCMethod('users.list')
    set_user_status = RPCMethod('users.setStatus')
    set_user_role = RPCMethod('users.setRole')

    # Listings
    create_listing = RPCMethod('listings.create')
    get_listing = RPCMethod('listings.get')
    list_my_listings = RPCMethod('listings.listMine')
    update_listing = RPCMethod('listings.update')
    delete_listing = RPCMethod('listings.delete')
    restock_listing = RPCMethod('listings.restock')
    browse_listings = RPCMethod('listings.browse')
    list_pending_reviews = RPCMethod('listings.pendingReviews')
    review_listing = RPCMethod('listings.review')

    # Orders
    create_order = RPCMethod('orders.create')
    get_order = RPCMethod('orders.get')
    list_my_orders = RPCMethod('orders.listMine')
    list_seller_orders = RPCMethod('orders.listSeller')
    confirm_order = RPCMethod('orders.confirm')
    start_processing = RPCMethod('orders.startProcessing')
    ship_order = RPCMethod('orders.ship')
    mark_delivered = RPCMethod('orders.markDelivered')
    cancel_order = RPCMethod('orders.cancel')
    get_order_history = RPCMethod('orders.history')
    mark_payout_paid = RPCMethod('orders.markPayoutPaid')

    # Support
    create_ticket = RPCMethod('support.createTicket')
    get_ticket = RPCMethod('support.getTicket')
    list_my_tickets = RPCMethod('support.listMyTickets')
    list_all_tickets = RPCMethod('support.listAllTickets')
    update_ticket = RPCMethod('support.updateTicket')
    reply_to_ticket = RPCMethod('support.reply')
    get_ticket_stats = RPCMethod('support.getStats')

    # Disputes
    open_dispute = RPCMethod('disputes.open')
    get_dispute = RPCMethod('disputes.get')
    list_disputes = RPCMethod('disputes.list')
    update_dispute_status = RPCMethod('disputes.updateStatus')

    # Refunds
    request_return = RPCMethod('refunds.requestReturn')
    get_refund = RPCMethod('refunds.get')
    list_my_refunds = RPCMethod('refunds.listMine')
    list_seller_refunds = RPCMethod('refunds.listSeller')
    list_all_refunds = RPCMethod('refunds.listAll')
    approve_return = RPCMethod('refunds.approve')
    reject_return = RPCMethod('refunds.reject')
    mark_return_received = RPCMethod('refunds.markReceived')
    complete_refund = RPCMethod('refunds.complete')
    cancel_return = RPCMethod('refunds.cancel')

    # Notifications
    list_notifications = RPCMethod('notifications.list')
    get_unread_count = RPCMethod('notifications.getUnreadCount')
    mark_notifications_read = RPCMethod('notifications.markRead')
    mark_all_notifications_read = RPCMethod('notifications.markAllRead')
    toggle_notification_star = RPCMethod('notifications.toggleStar')
    delete_notification = RPCMethod('notifications.delete')
    clear_notifications = RPCMethod('notifications.clearAll')
    get_notification_settings = RPCMethod('notifications.getSettings')
    update_notification_settings = RPCMethod('notifications.updateSettings')

    # Analytics
    get_dashboard_metrics = RPCMethod('analytics.dashboard')
    get_seller_summary = RPCMethod('analytics.sellerSummary')

__all__ = [
    'MarketplaceRPC',
    'RPCMethod',
    'RPCError',
    'ServerConnectionError',
    'AuthenticationError',
    'ProcedureError'
]
