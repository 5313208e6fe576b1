"""Tests for the authorization predicates."""

import pytest

from policy import (
    Caller,
    Role,
    can_archive,
    can_complete_order,
    can_edit_message,
    can_manage_responses,
    can_message,
    can_moderate,
    can_review_archived,
    can_view_archived,
    can_view_order
)
from tests.factories import (
    ADMIN,
    CUSTOMER,
    FREELANCER,
    OTHER_CUSTOMER,
    OTHER_FREELANCER,
    make_order
)

def test_role_parse():
    assert Role.parse('freelancer') is Role.FREELANCER
    assert Role.parse('superuser') is None
    assert Role.parse(None) is None

def test_only_admin_moderates():
    assert can_moderate(ADMIN)
    assert not can_moderate(CUSTOMER)
    assert not can_moderate(FREELANCER)
    assert not can_moderate(None)

def test_customer_views_only_own_orders():
    order = make_order()
    assert can_view_order(CUSTOMER, order)
    assert not can_view_order(OTHER_CUSTOMER, order)

def test_freelancer_views_open_or_assigned_orders():
    assert can_view_order(FREELANCER, make_order(status='open'))
    assigned = make_order(status='in_progress', freelancer_id=FREELANCER.user_id)
    assert can_view_order(FREELANCER, assigned)
    assert not can_view_order(OTHER_FREELANCER, assigned)

def test_admin_views_everything():
    assert can_view_order(ADMIN, make_order(status='cancelled'))

def test_missing_fields_deny():
    assert not can_view_order(CUSTOMER, {'id': 10})
    assert not can_view_order(CUSTOMER, None)
    assert not can_message(FREELANCER, {'id': 10})
    assert not can_edit_message(FREELANCER, {'id': 1})

def test_customer_with_no_user_id_is_denied():
    ghost = Caller(user_id=None, role=Role.CUSTOMER)
    assert not can_view_order(ghost, make_order(customer_id=None))

def test_can_message():
    open_order = make_order()
    assert can_message(CUSTOMER, open_order)
    assert not can_message(OTHER_CUSTOMER, open_order)
    assert can_message(FREELANCER, open_order)
    
    assigned = make_order(status='in_progress', freelancer_id=FREELANCER.user_id)
    assert can_message(FREELANCER, assigned)
    assert not can_message(OTHER_FREELANCER, assigned)
    
    # Admins moderate conversations but are not a party to them
    assert not can_message(ADMIN, open_order)

def test_can_archive_requires_completed():
    completed = make_order(status='completed', freelancer_id=FREELANCER.user_id)
    assert can_archive(CUSTOMER, completed)
    assert can_archive(ADMIN, completed)
    assert not can_archive(OTHER_CUSTOMER, completed)
    assert not can_archive(FREELANCER, completed)
    assert not can_archive(CUSTOMER, make_order(status='in_progress', freelancer_id=3))

@pytest.mark.parametrize('predicate', [can_manage_responses, can_complete_order])
def test_order_owner_predicates(predicate):
    order = make_order()
    assert predicate(CUSTOMER, order)
    assert predicate(ADMIN, order)
    assert not predicate(OTHER_CUSTOMER, order)
    assert not predicate(FREELANCER, order)

def test_can_edit_message():
    message = {'id': 1, 'sender_id': FREELANCER.user_id, 'receiver_id': CUSTOMER.user_id}
    assert can_edit_message(FREELANCER, message)
    assert can_edit_message(ADMIN, message)
    assert not can_edit_message(CUSTOMER, message)

def test_archived_visibility_and_review():
    archived = {'id': 5, 'customer_id': CUSTOMER.user_id, 'freelancer_id': FREELANCER.user_id}
    assert can_view_archived(CUSTOMER, archived)
    assert can_view_archived(FREELANCER, archived)
    assert not can_view_archived(OTHER_FREELANCER, archived)
    assert can_review_archived(CUSTOMER, archived)
    assert can_review_archived(ADMIN, archived)
    assert not can_review_archived(FREELANCER, archived)
