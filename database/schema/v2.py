"""Schema v2 - Order disputes and contact form submissions.

Disputes share the support ticket status set and carry an escalation level
that the escalation worker raises as a dispute ages.
"""
from .v1 import schema as v1_schema

schema = {
    'version': 2,
    'tables': v1_schema['tables'] + [
        {
            'name': 'order_disputes',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'order_id', 'type': 'UUID', 'nullable': False},
                {'name': 'opened_by', 'type': 'UUID', 'nullable': False},
                {'name': 'reason', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT', 'nullable': False},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'open'"},
                {'name': 'resolution', 'type': 'TEXT'},
                {'name': 'escalation_level', 'type': 'INT8', 'nullable': False, 'default': '0'},
                {'name': 'resolved_at', 'type': 'TIMESTAMPTZ'},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                "status IN ('open', 'in_progress', 'resolved', 'closed')",
                'escalation_level BETWEEN 0 AND 3'
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)'}
            ],
            'indexes': [
                {'name': 'idx_disputes_order', 'columns': ['order_id']},
                {'name': 'idx_disputes_status', 'columns': ['status']}
            ]
        },
        {
            'name': 'contact_messages',
            'columns': [
                {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'subject', 'type': 'TEXT', 'nullable': False},
                {'name': 'message', 'type': 'TEXT', 'nullable': False},
                {'name': 'category', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMPTZ', 'nullable': False, 'default': 'now()'}
            ]
        }
    ],
    'migrations': [
        '''
        CREATE TABLE IF NOT EXISTS order_disputes (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            order_id UUID NOT NULL REFERENCES orders(id),
            opened_by UUID NOT NULL,
            reason TEXT NOT NULL,
            description TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'open',
            resolution TEXT,
            escalation_level INT8 NOT NULL DEFAULT 0,
            resolved_at TIMESTAMPTZ,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
            CHECK (status IN ('open', 'in_progress', 'resolved', 'closed')),
            CHECK (escalation_level BETWEEN 0 AND 3)
        )
        ''',
        'CREATE INDEX IF NOT EXISTS idx_disputes_order ON order_disputes(order_id)',
        'CREATE INDEX IF NOT EXISTS idx_disputes_status ON order_disputes(status)',
        '''
        CREATE TABLE IF NOT EXISTS contact_messages (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name TEXT NOT NULL,
            email TEXT NOT NULL,
            subject TEXT NOT NULL,
            message TEXT NOT NULL,
            category TEXT NOT NULL,
            created_at TIMESTAMPTZ NOT NULL DEFAULT now()
        )
        '''
    ]
}
