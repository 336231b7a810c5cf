"""Tests for schema files and the SQL built from them."""

from database.lib.schema_manager import load_schema_files, create_table_sql, constraint_sql

def test_schema_versions_load_in_order():
    schemas = load_schema_files()
    assert list(schemas) == [1, 2]

def test_latest_schema_has_marketplace_tables():
    tables = {t['name'] for t in load_schema_files()[2]['tables']}
    assert {
        'users',
        'listings',
        'orders',
        'refunds',
        'support_tickets',
        'order_disputes',
        'notifications',
        'notification_settings',
        'contact_messages'
    } <= tables

def test_create_table_sql():
    sql = create_table_sql({
        'name': 'widgets',
        'columns': [
            {'name': 'id', 'type': 'UUID', 'primary_key': True, 'default': 'gen_random_uuid()'},
            {'name': 'code', 'type': 'TEXT', 'nullable': False, 'unique': True},
            {'name': 'stock', 'type': 'INT8', 'default': '0'}
        ],
        'checks': ['stock >= 0']
    })

    assert sql.startswith('CREATE TABLE IF NOT EXISTS widgets (')
    assert 'id UUID DEFAULT gen_random_uuid()' in sql
    assert 'code TEXT NOT NULL' in sql
    assert 'PRIMARY KEY (id)' in sql
    assert 'UNIQUE (code)' in sql
    assert 'CHECK (stock >= 0)' in sql

def test_composite_primary_key():
    sql = create_table_sql({
        'name': 'pairs',
        'columns': [{'name': 'a', 'type': 'UUID'}, {'name': 'b', 'type': 'UUID'}],
        'primary_key': ['a', 'b']
    })
    assert 'PRIMARY KEY (a, b)' in sql

def test_constraint_sql():
    statements = constraint_sql({
        'name': 'widgets',
        'foreign_keys': [{'columns': ['owner_id'], 'references': 'users(id)', 'on_delete': 'CASCADE'}],
        'indexes': [
            {'name': 'idx_widgets_owner', 'columns': ['owner_id']},
            {'name': 'idx_widgets_live', 'columns': ['code'], 'unique': True, 'where': 'stock > 0'}
        ]
    })

    assert statements == [
        'ALTER TABLE widgets ADD CONSTRAINT fk_widgets_owner_id FOREIGN KEY (owner_id) REFERENCES users(id) ON DELETE CASCADE',
        'CREATE INDEX IF NOT EXISTS idx_widgets_owner ON widgets(owner_id)',
        'CREATE UNIQUE INDEX IF NOT EXISTS idx_widgets_live ON widgets(code) WHERE stock > 0'
    ]
