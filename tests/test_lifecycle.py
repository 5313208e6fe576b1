"""Tests for the order transition table."""

import logging

import pytest

from errors import AuthorizationDenied, PreconditionFailed
from orders.lifecycle import (
    ASSIGNED_STATUSES,
    OrderStatus,
    TRANSITIONS,
    check_transition,
    find_transition,
    parse_status,
    resolve_admin_update
)
from policy import Role
from tests.factories import make_order

def test_transition_table():
    accept = TRANSITIONS['accept']
    assert accept.source is OrderStatus.OPEN
    assert accept.target is OrderStatus.IN_PROGRESS
    assert TRANSITIONS['complete'].source is OrderStatus.IN_PROGRESS
    assert TRANSITIONS['complete'].target is OrderStatus.COMPLETED
    assert TRANSITIONS['admin_override'].roles == frozenset({Role.ADMIN})

def test_parse_status_rejects_unknown():
    assert parse_status('completed') is OrderStatus.COMPLETED
    with pytest.raises(PreconditionFailed):
        parse_status('archived')

def test_accept_from_open():
    transition = check_transition('accept', 'open', Role.CUSTOMER)
    assert transition.target is OrderStatus.IN_PROGRESS

def test_accept_requires_open():
    with pytest.raises(PreconditionFailed, match="no longer open"):
        check_transition('accept', 'in_progress', Role.CUSTOMER)

def test_freelancer_cannot_accept():
    with pytest.raises(AuthorizationDenied):
        check_transition('accept', 'open', Role.FREELANCER)

def test_complete_requires_in_progress():
    with pytest.raises(PreconditionFailed, match="Cannot complete"):
        check_transition('complete', 'open', Role.CUSTOMER)

def test_cancel_is_admin_only():
    with pytest.raises(AuthorizationDenied):
        check_transition('cancel', 'open', Role.CUSTOMER)
    assert check_transition('cancel', 'open', Role.ADMIN).target is OrderStatus.CANCELLED

def test_admin_override_requires_admin():
    with pytest.raises(AuthorizationDenied):
        resolve_admin_update(make_order(), {'status': 'cancelled'}, Role.CUSTOMER)

def test_admin_override_to_open_drops_freelancer():
    order = make_order(status='in_progress', freelancer_id=3)
    fields = resolve_admin_update(order, {'status': 'open'}, Role.ADMIN)
    assert fields['status'] == 'open'
    assert fields['freelancer_id'] is None

def test_admin_override_to_in_progress_needs_freelancer():
    with pytest.raises(PreconditionFailed, match="requires an assigned freelancer"):
        resolve_admin_update(make_order(), {'status': 'in_progress'}, Role.ADMIN)
        
    fields = resolve_admin_update(
        make_order(),
        {'status': 'in_progress', 'freelancer_id': 3},
        Role.ADMIN
    )
    assert fields == {'status': 'in_progress', 'freelancer_id': 3}

def test_admin_override_keeps_existing_assignment():
    order = make_order(status='in_progress', freelancer_id=3)
    fields = resolve_admin_update(order, {'status': 'completed', 'title': 'New'}, Role.ADMIN)
    assert fields['freelancer_id'] == 3
    assert fields['title'] == 'New'

def test_admin_cannot_assign_to_cancelled():
    with pytest.raises(PreconditionFailed, match="cannot have an assigned freelancer"):
        resolve_admin_update(
            make_order(),
            {'status': 'cancelled', 'freelancer_id': 3},
            Role.ADMIN
        )

@pytest.mark.parametrize('status', list(OrderStatus))
def test_resolved_fields_satisfy_freelancer_invariant(status):
    order = make_order(status='in_progress', freelancer_id=3)
    fields = resolve_admin_update(order, {'status': status.value}, Role.ADMIN)
    assigned = fields['freelancer_id'] is not None
    assert assigned == (status in ASSIGNED_STATUSES)

def test_find_transition():
    assert find_transition(OrderStatus.OPEN, OrderStatus.CANCELLED).name == 'cancel'
    assert find_transition(OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED).name == 'complete'
    assert find_transition(OrderStatus.COMPLETED, OrderStatus.OPEN) is None

def test_admin_cancel_uses_cancel_transition(caplog):
    with caplog.at_level(logging.INFO, logger='orders.lifecycle'):
        fields = resolve_admin_update(make_order(), {'status': 'cancelled'}, Role.ADMIN)
        
    assert fields == {'status': 'cancelled', 'freelancer_id': None}
    assert 'Admin cancel on order 10' in caplog.text
    assert 'override' not in caplog.text

def test_irregular_admin_change_is_logged_as_override(caplog):
    order = make_order(status='completed', freelancer_id=3)
    with caplog.at_level(logging.WARNING, logger='orders.lifecycle'):
        resolve_admin_update(order, {'status': 'open'}, Role.ADMIN)
    assert 'Admin override on order 10: completed -> open' in caplog.text
