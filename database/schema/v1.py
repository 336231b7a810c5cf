"""Schema v1 - Initial marketplace tables.

Users, listings, orders with escrow fields, support tickets, refunds and
notifications. Money is stored as integer cents next to a currency code.
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'display_name', 'type': 'TEXT'},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'buyer'"},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'active'"},
                {'name': 'phone', 'type': 'TEXT'},
                {'name': 'profile_image_url', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                "role IN ('buyer', 'seller', 'admin')",
                "status IN ('active', 'suspended')"
            ],
            'indexes': [
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True},
                {'name': 'idx_users_role', 'columns': ['role']}
            ]
        },
        {
            'name': 'listings',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'image_url', 'type': 'TEXT'},
                {'name': 'price_cents', 'type': 'INT8', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False, 'default': "'NGN'"},
                {'name': 'sizes', 'type': 'TEXT[]'},
                {'name': 'colors', 'type': 'TEXT[]'},
                {'name': 'quantity_available', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'review_status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'review_notes', 'type': 'TEXT'},
                {'name': 'reviewed_by', 'type': 'UUID'},
                {'name': 'reviewed_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                'price_cents > 0',
                'quantity_available >= 0'
            ],
            'foreign_keys': [
                {'columns': ['seller_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_listings_seller', 'columns': ['seller_id']},
                {'name': 'idx_listings_category', 'columns': ['category']},
                {'name': 'idx_listings_review_status', 'columns': ['review_status']}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'listing_id', 'type': 'UUID', 'nullable': False},
                {'name': 'product_title', 'type': 'TEXT', 'nullable': False},
                {'name': 'product_image', 'type': 'TEXT'},
                {'name': 'product_category', 'type': 'TEXT'},
                {'name': 'quantity', 'type': 'INT8', 'nullable': False, 'default': '1'},
                {'name': 'amount_cents', 'type': 'INT8', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False, 'default': "'NGN'"},
                {'name': 'customer_name', 'type': 'TEXT', 'nullable': False},
                {'name': 'customer_email', 'type': 'TEXT', 'nullable': False},
                {'name': 'shipping_address', 'type': 'TEXT', 'nullable': False},
                {'name': 'order_status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'payout_status', 'type': 'TEXT', 'nullable': False, 'default': "'in_escrow'"},
                {'name': 'delivery_status', 'type': 'TEXT', 'nullable': False, 'default': "'not_shipped'"},
                {'name': 'tracking_number', 'type': 'TEXT'},
                {'name': 'shipped_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'delivered_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'hold_releasable_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                'quantity > 0',
                'amount_cents > 0'
            ],
            'foreign_keys': [
                {'columns': ['buyer_id'], 'references': 'users(id)'},
                {'columns': ['seller_id'], 'references': 'users(id)'},
                {'columns': ['listing_id'], 'references': 'listings(id)'}
            ],
            'indexes': [
                {'name': 'idx_orders_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_orders_seller', 'columns': ['seller_id']},
                {'name': 'idx_orders_status', 'columns': ['order_status']},
                {'name': 'idx_orders_created', 'columns': ['created_at']},
                {
                    'name': 'idx_orders_escrow',
                    'columns': ['hold_releasable_at'],
                    'where': "payout_status = 'in_escrow'"
                }
            ]
        },
        {
            'name': 'order_history',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'order_id', 'type': 'UUID', 'nullable': False},
                {'name': 'from_status', 'type': 'TEXT'},
                {'name': 'to_status', 'type': 'TEXT', 'nullable': False},
                {'name': 'actor_id', 'type': 'UUID'},
                {'name': 'note', 'type': 'TEXT'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_order_history_order', 'columns': ['order_id', 'created_at']}
            ]
        },
        {
            'name': 'support_tickets',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'order_id', 'type': 'UUID'},
                {'name': 'subject', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'open'"},
                {'name': 'priority', 'type': 'TEXT', 'nullable': False, 'default': "'medium'"},
                {'name': 'assigned_to', 'type': 'UUID'},
                {'name': 'resolved_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                "status IN ('open', 'in_progress', 'resolved', 'closed')",
                "priority IN ('low', 'medium', 'high', 'urgent')"
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_tickets_user', 'columns': ['user_id']},
                {'name': 'idx_tickets_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'support_ticket_replies',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'ticket_id', 'type': 'UUID', 'nullable': False},
                {'name': 'sender_id', 'type': 'UUID', 'nullable': False},
                {'name': 'sender_role', 'type': 'TEXT', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'is_internal', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['ticket_id'], 'references': 'support_tickets(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_ticket_replies_ticket', 'columns': ['ticket_id', 'created_at']}
            ]
        },
        {
            'name': 'refunds',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'order_id', 'type': 'UUID', 'nullable': False},
                {'name': 'buyer_id', 'type': 'UUID', 'nullable': False},
                {'name': 'seller_id', 'type': 'UUID', 'nullable': False},
                {'name': 'rma_number', 'type': 'TEXT', 'nullable': False},
                {'name': 'refund_type', 'type': 'TEXT', 'nullable': False},
                {'name': 'reason', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'amount_cents', 'type': 'INT8', 'nullable': False},
                {'name': 'currency', 'type': 'TEXT', 'nullable': False, 'default': "'NGN'"},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'return_requested'"},
                {'name': 'rejection_reason', 'type': 'TEXT'},
                {'name': 'received_condition', 'type': 'TEXT'},
                {'name': 'received_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'processed_by', 'type': 'UUID'},
                {'name': 'refunded_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': ['amount_cents > 0'],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)'}
            ],
            'indexes': [
                {'name': 'idx_refunds_order', 'columns': ['order_id']},
                {'name': 'idx_refunds_buyer', 'columns': ['buyer_id']},
                {'name': 'idx_refunds_seller', 'columns': ['seller_id']},
                {'name': 'idx_refunds_rma', 'columns': ['rma_number'], 'unique': True}
            ]
        },
        {
            'name': 'notifications',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'user_id', 'type': 'UUID', 'nullable': False},
                {'name': 'type', 'type': 'TEXT', 'nullable': False},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'order_id', 'type': 'UUID'},
                {'name': 'is_read', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'is_starred', 'type': 'BOOLEAN', 'nullable': False, 'default': 'false'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'}
            ],
            'indexes': [
                {'name': 'idx_notifications_user', 'columns': ['user_id', 'created_at']},
                {'name': 'idx_notifications_unread', 'columns': ['user_id'], 'where': 'is_read = false'}
            ]
        },
        {
            'name': 'notification_settings',
            'columns': [
                {'name': 'user_id', 'type': 'UUID', 'primary_key': True},
                {'name': 'order_updates', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'refund_updates', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'support_updates', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'listing_updates', 'type': 'BOOLEAN', 'nullable': False, 'default': 'true'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['user_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'}
            ]
        }
    ]
}
