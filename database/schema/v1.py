"""Schema v1 - Initial freelance marketplace schema.

This version includes tables for:
- Users and roles
- Category tree
- Orders and freelancer responses
- Per-order messages
- Archived (completed and rated) orders
"""

schema = {
    'version': 1,
    'tables': [
        {
            'name': 'users',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'username', 'type': 'TEXT', 'nullable': False, 'unique': True},
                {'name': 'email', 'type': 'TEXT', 'nullable': False},
                {'name': 'password_hash', 'type': 'TEXT', 'nullable': False},
                {'name': 'role', 'type': 'TEXT', 'nullable': False, 'default': "'customer'"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_users_role', 'expression': "role IN ('customer', 'freelancer', 'admin')"}
            ],
            'indexes': [
                {'name': 'idx_users_email', 'columns': ['email'], 'unique': True},
                {'name': 'idx_users_role', 'columns': ['role']}
            ]
        },
        {
            'name': 'categories',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'name', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'parent_id', 'type': 'INT4'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'foreign_keys': [
                {'columns': ['parent_id'], 'references': 'categories(id)'}
            ],
            'indexes': [
                {'name': 'idx_categories_parent', 'columns': ['parent_id']}
            ]
        },
        {
            'name': 'orders',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'budget', 'type': 'DECIMAL(12, 2)', 'nullable': False},
                {'name': 'deadline', 'type': 'DATE'},
                {'name': 'customer_id', 'type': 'INT4', 'nullable': False},
                {'name': 'freelancer_id', 'type': 'INT4'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'open'"},
                {'name': 'category_id', 'type': 'INT4'},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {
                    'name': 'chk_orders_status',
                    'expression': "status IN ('open', 'in_progress', 'completed', 'cancelled')"
                },
                {
                    'name': 'chk_orders_freelancer_assigned',
                    'expression': "(freelancer_id IS NOT NULL) = (status IN ('in_progress', 'completed'))"
                }
            ],
            'foreign_keys': [
                {'columns': ['customer_id'], 'references': 'users(id)'},
                {'columns': ['freelancer_id'], 'references': 'users(id)'},
                {'columns': ['category_id'], 'references': 'categories(id)'}
            ],
            'indexes': [
                {'name': 'idx_orders_customer', 'columns': ['customer_id']},
                {'name': 'idx_orders_freelancer', 'columns': ['freelancer_id']},
                {'name': 'idx_orders_status', 'columns': ['status']},
                {'name': 'idx_orders_category', 'columns': ['category_id']}
            ]
        },
        {
            'name': 'order_responses',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'order_id', 'type': 'INT4', 'nullable': False},
                {'name': 'freelancer_id', 'type': 'INT4', 'nullable': False},
                {'name': 'proposal', 'type': 'TEXT', 'nullable': False},
                {'name': 'price', 'type': 'DECIMAL(12, 2)', 'nullable': False},
                {'name': 'estimated_time', 'type': 'INT4'},
                {'name': 'status', 'type': 'TEXT', 'nullable': False, 'default': "'pending'"},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'}
            ],
            'checks': [
                {'name': 'chk_responses_status', 'expression': "status IN ('pending', 'accepted', 'rejected')"}
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)', 'on_delete': 'CASCADE'},
                {'columns': ['freelancer_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {
                    'name': 'idx_responses_order_freelancer',
                    'columns': ['order_id', 'freelancer_id'],
                    'unique': True
                },
                {
                    'name': 'idx_responses_one_accepted',
                    'columns': ['order_id'],
                    'unique': True,
                    'where': "status = 'accepted'"
                },
                {'name': 'idx_responses_freelancer', 'columns': ['freelancer_id']}
            ]
        },
        {
            'name': 'messages',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'order_id', 'type': 'INT4', 'nullable': False},
                {'name': 'sender_id', 'type': 'INT4', 'nullable': False},
                {'name': 'receiver_id', 'type': 'INT4', 'nullable': False},
                {'name': 'content', 'type': 'TEXT', 'nullable': False},
                {'name': 'created_at', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'clock_timestamp()'},
                {'name': 'updated_at', 'type': 'TIMESTAMP'}
            ],
            'foreign_keys': [
                {'columns': ['order_id'], 'references': 'orders(id)', 'on_delete': 'CASCADE'},
                {'columns': ['sender_id'], 'references': 'users(id)'},
                {'columns': ['receiver_id'], 'references': 'users(id)'}
            ],
            'indexes': [
                {'name': 'idx_messages_order_created', 'columns': ['order_id', 'created_at']},
                {'name': 'idx_messages_sender', 'columns': ['sender_id']},
                {'name': 'idx_messages_receiver', 'columns': ['receiver_id']}
            ]
        },
        {
            'name': 'archived_orders',
            'columns': [
                {'name': 'id', 'type': 'SERIAL', 'primary_key': True},
                {'name': 'order_id', 'type': 'INT4', 'nullable': False, 'unique': True},
                {'name': 'title', 'type': 'TEXT', 'nullable': False},
                {'name': 'description', 'type': 'TEXT'},
                {'name': 'budget', 'type': 'DECIMAL(12, 2)'},
                {'name': 'deadline', 'type': 'DATE'},
                {'name': 'category_id', 'type': 'INT4'},
                {'name': 'customer_id', 'type': 'INT4'},
                {'name': 'freelancer_id', 'type': 'INT4'},
                {'name': 'completion_date', 'type': 'TIMESTAMP', 'nullable': False, 'default': 'now()'},
                {'name': 'rating', 'type': 'INT4'},
                {'name': 'review', 'type': 'TEXT'}
            ],
            'checks': [
                {'name': 'chk_archived_rating', 'expression': 'rating IS NULL OR rating BETWEEN 1 AND 5'}
            ],
            'indexes': [
                {'name': 'idx_archived_customer', 'columns': ['customer_id']},
                {'name': 'idx_archived_freelancer', 'columns': ['freelancer_id']},
                {'name': 'idx_archived_completion', 'columns': ['completion_date']}
            ]
        }
    ]
}
