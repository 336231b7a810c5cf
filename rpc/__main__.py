"""Command line interface for checking a running marketplace API"""
import os
import sys

from . import MarketplaceRPC, AuthenticationError, ProcedureError, ServerConnectionError

def check_rpc(base_url: str, token: str = None):
    """Exercise a few public and authenticated procedures"""
    client = MarketplaceRPC(base_url, token=token)

    try:
        print("\nTesting public procedures:")
        print("-" * 50)

        print("1. Testing listings.browse:")
        page = client.browse_listings(limit=5)
        print(f"  Success! {page['total_count']} listings available")
        for listing in page['listings']:
            print(f"  - {listing['title']} ({listing['category']})")

        print("\nTesting authenticated procedures:")
        print("-" * 50)

        print("\n2. Testing notifications.getUnreadCount:")
        try:
            result = client.get_unread_count()
            print(f"  Success! Unread notifications: {result['unread_count']}")
        except AuthenticationError as e:
            print(f"  Skipped, no valid token: {e}")

        print("\nTesting error scenarios:")
        print("-" * 50)

        print("\n3. Testing a missing order:")
        try:
            client.get_order(order_id='00000000-0000-0000-0000-000000000000')
            print("  Error: Should have raised an exception!")
        except (ProcedureError, AuthenticationError) as e:
            print(f"  Success! Got expected error: {e}")

    except ServerConnectionError as e:
        print(f"\nConnection Error: {e}")
        print("Please check that the API is running at the given URL")
        sys.exit(1)

if __name__ == "__main__":
    url = sys.argv[1] if len(sys.argv) > 1 else 'http://localhost:8000'
    check_rpc(url, os.environ.get('LUXELA_TOKEN'))
