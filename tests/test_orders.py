"""Tests for the orders module."""

import pytest
from decimal import Decimal
from asyncpg.exceptions import PostgresError, UniqueViolationError, ForeignKeyViolationError

from errors import AuthorizationDenied, NotFound, PreconditionFailed, StoreFailure
from orders import (
    OrderManager,
    DuplicateResponseError,
    OrderNotOpenError,
    ResponseStatus
)
from tests.factories import (
    ADMIN,
    CUSTOMER,
    FREELANCER,
    OTHER_CUSTOMER,
    OTHER_FREELANCER,
    make_order,
    make_response
)

@pytest.fixture
def order_manager(pool):
    return OrderManager(pool)

@pytest.mark.asyncio
async def test_list_orders_scopes_by_role(order_manager, conn):
    """Test that each role gets its own WHERE clause."""
    await order_manager.list_orders(CUSTOMER)
    query, *params = conn.fetch.call_args.args
    assert 'o.customer_id = $1' in query
    assert params == [CUSTOMER.user_id]
    
    await order_manager.list_orders(FREELANCER)
    query, *params = conn.fetch.call_args.args
    assert "o.status = 'open' OR o.freelancer_id = $1" in query
    assert params == [FREELANCER.user_id]
    
    await order_manager.list_orders(ADMIN)
    query, *params = conn.fetch.call_args.args
    assert 'WHERE' not in query.split('LEFT JOIN categories')[1]
    assert params == []

@pytest.mark.asyncio
async def test_list_all_orders_is_admin_only(order_manager, conn):
    with pytest.raises(AuthorizationDenied):
        await order_manager.list_all_orders(CUSTOMER)
    conn.fetch.assert_not_called()

@pytest.mark.asyncio
async def test_list_customer_orders_filters_by_visibility(order_manager, conn):
    conn.fetch.return_value = [
        make_order(id=1, status='open'),
        make_order(id=2, status='in_progress', freelancer_id=FREELANCER.user_id),
        make_order(id=3, status='in_progress', freelancer_id=OTHER_FREELANCER.user_id)
    ]
    
    orders = await order_manager.list_customer_orders(FREELANCER, CUSTOMER.user_id)
    assert [o['id'] for o in orders] == [1, 2]
    
    assert await order_manager.list_customer_orders(OTHER_CUSTOMER, CUSTOMER.user_id) == []

@pytest.mark.asyncio
async def test_get_order(order_manager, conn):
    conn.fetchrow.return_value = make_order()
    order = await order_manager.get_order(CUSTOMER, 10)
    assert order['id'] == 10
    
    with pytest.raises(AuthorizationDenied):
        await order_manager.get_order(OTHER_CUSTOMER, 10)
        
    conn.fetchrow.return_value = None
    with pytest.raises(NotFound):
        await order_manager.get_order(CUSTOMER, 10)

@pytest.mark.asyncio
async def test_store_errors_become_store_failure(order_manager, conn):
    conn.fetch.side_effect = PostgresError('connection lost')
    with pytest.raises(StoreFailure) as exc_info:
        await order_manager.list_orders(CUSTOMER)
    assert exc_info.value.status_code == 500
    assert exc_info.value.message == "Error fetching orders"

@pytest.mark.asyncio
async def test_create_order(order_manager, conn):
    conn.fetchrow.return_value = make_order()
    
    order = await order_manager.create_order(
        CUSTOMER,
        title='Landing page',
        description='One page site',
        budget=Decimal('500'),
        deadline=None
    )
    
    assert order['status'] == 'open'
    args = conn.fetchrow.call_args.args
    assert "'open'" in args[0]
    assert args[5] == CUSTOMER.user_id

@pytest.mark.asyncio
async def test_only_customers_create_orders(order_manager, conn):
    for caller in (FREELANCER, ADMIN):
        with pytest.raises(AuthorizationDenied):
            await order_manager.create_order(caller, 'T', None, Decimal('1'), None)
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_create_order_unknown_category(order_manager, conn):
    conn.fetchrow.side_effect = ForeignKeyViolationError('category_id')
    with pytest.raises(PreconditionFailed, match="Category not found"):
        await order_manager.create_order(CUSTOMER, 'T', None, Decimal('1'), None, category_id=99)

@pytest.mark.asyncio
async def test_update_order_admin_override(order_manager, conn):
    conn.fetchrow.side_effect = [
        make_order(status='in_progress', freelancer_id=FREELANCER.user_id),
        make_order(status='open', title='Reopened')
    ]
    
    order = await order_manager.update_order(ADMIN, 10, {'status': 'open', 'title': 'Reopened'})
    assert order['status'] == 'open'
    
    query, *params = conn.fetchrow.call_args.args
    assert 'title = $2' in query
    assert 'status = $3' in query
    assert 'freelancer_id = $4' in query
    assert params == [10, 'Reopened', 'open', None]

@pytest.mark.asyncio
async def test_update_order_rejects_non_admin_and_unknown_fields(order_manager, conn):
    with pytest.raises(AuthorizationDenied):
        await order_manager.update_order(CUSTOMER, 10, {'title': 'x'})
    with pytest.raises(PreconditionFailed, match="customer_id"):
        await order_manager.update_order(ADMIN, 10, {'customer_id': 2})
    conn.fetchrow.assert_not_called()

@pytest.mark.asyncio
async def test_delete_order(order_manager, conn):
    conn.fetchval.return_value = 10
    result = await order_manager.delete_order(ADMIN, 10)
    assert result == {"message": "Order deleted successfully"}
    
    conn.fetchval.return_value = None
    with pytest.raises(NotFound):
        await order_manager.delete_order(ADMIN, 10)
    with pytest.raises(AuthorizationDenied):
        await order_manager.delete_order(CUSTOMER, 10)

@pytest.mark.asyncio
async def test_complete_order(order_manager, conn):
    conn.fetchrow.side_effect = [
        make_order(status='in_progress', freelancer_id=FREELANCER.user_id),
        make_order(status='completed', freelancer_id=FREELANCER.user_id)
    ]
    
    order = await order_manager.complete_order(CUSTOMER, 10)
    
    assert order['status'] == 'completed'
    assert order['freelancer_id'] == FREELANCER.user_id
    _, order_id, target, source = conn.fetchrow.call_args.args
    assert (order_id, target, source) == (10, 'completed', 'in_progress')

@pytest.mark.asyncio
async def test_complete_order_requires_in_progress(order_manager, conn):
    conn.fetchrow.return_value = make_order(status='open')
    with pytest.raises(PreconditionFailed):
        await order_manager.complete_order(CUSTOMER, 10)

@pytest.mark.asyncio
async def test_freelancer_cannot_complete(order_manager, conn):
    conn.fetchrow.return_value = make_order(status='in_progress', freelancer_id=FREELANCER.user_id)
    with pytest.raises(AuthorizationDenied):
        await order_manager.complete_order(FREELANCER, 10)

@pytest.mark.asyncio
async def test_list_order_responses_owner_only(order_manager, conn):
    conn.fetchrow.return_value = make_order()
    conn.fetch.return_value = [make_response()]
    
    responses = await order_manager.list_order_responses(CUSTOMER, 10)
    assert len(responses) == 1
    
    with pytest.raises(AuthorizationDenied):
        await order_manager.list_order_responses(FREELANCER, 10)

@pytest.mark.asyncio
async def test_create_response(order_manager, conn):
    conn.fetchrow.side_effect = [make_order(), make_response()]
    
    response = await order_manager.create_response(
        FREELANCER,
        order_id=10,
        proposal='I can do it',
        price=Decimal('450'),
        estimated_time=5
    )
    
    assert response['status'] == 'pending'
    assert conn.fetchrow.call_args.args[1:] == (10, FREELANCER.user_id, 'I can do it', Decimal('450'), 5)


@pytest.mark.asyncio
async def test_create_response_shares_the_order_lock(order_manager, conn):
    """Test that the open check and the insert happen under one row lock."""
    conn.fetchrow.side_effect = [make_order(), make_response()]
    
    await order_manager.create_response(FREELANCER, 10, 'I can do it', Decimal('450'))
    
    conn.transaction.assert_called_once()
    order_query = conn.fetchrow.call_args_list[0].args[0]
    assert order_query.endswith('FOR SHARE')

@pytest.mark.asyncio
async def test_create_response_requires_freelancer(order_manager, conn):
    with pytest.raises(AuthorizationDenied):
        await order_manager.create_response(CUSTOMER, 10, 'x', Decimal('1'))

@pytest.mark.asyncio
async def test_create_response_on_closed_order(order_manager, conn):
    conn.fetchrow.return_value = make_order(status='in_progress', freelancer_id=OTHER_FREELANCER.user_id)
    with pytest.raises(OrderNotOpenError):
        await order_manager.create_response(FREELANCER, 10, 'x', Decimal('1'))

@pytest.mark.asyncio
async def test_duplicate_response_rejected(order_manager, conn):
    conn.fetchrow.return_value = make_order()
    conn.fetchval.return_value = 20
    
    with pytest.raises(DuplicateResponseError):
        await order_manager.create_response(FREELANCER, 10, 'again', Decimal('1'))
    # Only the order lookup ran, no insert
    assert conn.fetchrow.call_count == 1

@pytest.mark.asyncio
async def test_duplicate_response_race_hits_unique_index(order_manager, conn):
    conn.fetchrow.side_effect = [make_order(), UniqueViolationError('order_responses_order_freelancer')]
    with pytest.raises(DuplicateResponseError):
        await order_manager.create_response(FREELANCER, 10, 'again', Decimal('1'))

@pytest.mark.asyncio
async def test_accept_response(order_manager, conn):
    """Test that accepting assigns the freelancer and rejects the siblings."""
    conn.fetchval.return_value = 10
    conn.fetchrow.side_effect = [
        make_order(),
        make_response(),
        make_response(status='accepted')
    ]
    conn.execute.side_effect = ['UPDATE 1', 'UPDATE 2']
    
    response = await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)
    
    assert response['status'] == 'accepted'
    conn.transaction.assert_called_once()
    
    order_update, siblings = conn.execute.call_args_list
    assert order_update.args[1:] == ('in_progress', FREELANCER.user_id, 10, 'open')
    assert 'AND status = $4' in order_update.args[0]
    assert "SET status = 'rejected'" in siblings.args[0]
    assert siblings.args[1:] == (10, 20)
    
    # The order row is locked before anything is written
    assert 'FOR UPDATE' in conn.fetchrow.call_args_list[0].args[0]

@pytest.mark.asyncio
async def test_accept_loses_race(order_manager, conn):
    """Test that a conditional order update matching nothing aborts the accept."""
    conn.fetchval.return_value = 10
    conn.fetchrow.side_effect = [
        make_order(),
        make_response()
    ]
    conn.execute.return_value = 'UPDATE 0'
    
    with pytest.raises(OrderNotOpenError):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)
        
    # Nothing after the order update ran
    assert conn.execute.call_count == 1
    assert conn.fetchrow.call_count == 2

@pytest.mark.asyncio
async def test_accept_on_assigned_order(order_manager, conn):
    conn.fetchval.return_value = 10
    conn.fetchrow.return_value = make_order(status='in_progress', freelancer_id=OTHER_FREELANCER.user_id)
    
    with pytest.raises(PreconditionFailed, match="no longer open"):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)
    conn.execute.assert_not_called()

@pytest.mark.asyncio
async def test_accept_by_other_customer_denied(order_manager, conn):
    conn.fetchval.return_value = 10
    conn.fetchrow.return_value = make_order()
    
    with pytest.raises(AuthorizationDenied):
        await order_manager.update_response_status(OTHER_CUSTOMER, 20, ResponseStatus.ACCEPTED)

@pytest.mark.asyncio
async def test_accept_non_pending_response(order_manager, conn):
    conn.fetchval.return_value = 10
    conn.fetchrow.side_effect = [make_order(), make_response(status='rejected')]
    
    with pytest.raises(PreconditionFailed, match="no longer pending"):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)

@pytest.mark.asyncio
async def test_reject_response(order_manager, conn):
    conn.fetchval.return_value = 10
    conn.fetchrow.side_effect = [
        make_order(),
        make_response(),
        make_response(status='rejected')
    ]
    
    response = await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.REJECTED)
    
    assert response['status'] == 'rejected'
    conn.execute.assert_not_called()

@pytest.mark.asyncio
async def test_response_status_validation(order_manager, conn):
    with pytest.raises(PreconditionFailed):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.PENDING)
        
    with pytest.raises(NotFound):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)

@pytest.mark.asyncio
async def test_delete_own_pending_response(order_manager, conn):
    conn.fetchrow.return_value = make_response()
    conn.execute.return_value = 'DELETE 1'
    
    result = await order_manager.delete_response(FREELANCER, 20)
    assert result == {"message": "Response deleted successfully"}

@pytest.mark.asyncio
async def test_delete_response_rules(order_manager, conn):
    conn.fetchrow.return_value = make_response()
    with pytest.raises(NotFound):
        await order_manager.delete_response(OTHER_FREELANCER, 20)
        
    conn.fetchrow.return_value = make_response(status='accepted')
    with pytest.raises(PreconditionFailed):
        await order_manager.delete_response(FREELANCER, 20)

@pytest.mark.asyncio
async def test_response_withdrawn_before_lock(order_manager, conn):
    """Test that a response deleted while waiting for the order lock is a 404."""
    conn.fetchval.return_value = 10
    conn.fetchrow.side_effect = [make_order(), None]
    
    with pytest.raises(NotFound, match="Response not found"):
        await order_manager.update_response_status(CUSTOMER, 20, ResponseStatus.ACCEPTED)
        
    assert 'FOR UPDATE' in conn.fetchrow.call_args_list[1].args[0]
    conn.execute.assert_not_called()
