"""Order state machine.

Every status change an order can go through is listed in ``TRANSITIONS``
together with the roles allowed to take it. Ownership is checked separately
by the policy module; this table only answers "is this edge legal for this role".
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional

from errors import AuthorizationDenied, PreconditionFailed
from policy import Role

logger = logging.getLogger(__name__)


class OrderStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResponseStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Statuses in which an order must have a freelancer, and no other status may have one
ASSIGNED_STATUSES = frozenset({OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED})


@dataclass(frozen=True)
class Transition:
    name: str
    source: Optional[OrderStatus]  # None matches any status
    target: Optional[OrderStatus]
    roles: FrozenSet[Role]

    def matches(self, current: OrderStatus) -> bool:
        return self.source is None or self.source == current


TRANSITIONS: Dict[str, Transition] = {
    t.name: t for t in (
        Transition('accept', OrderStatus.OPEN, OrderStatus.IN_PROGRESS,
                   frozenset({Role.CUSTOMER, Role.ADMIN})),
        Transition('complete', OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED,
                   frozenset({Role.CUSTOMER, Role.ADMIN})),
        Transition('cancel', OrderStatus.OPEN, OrderStatus.CANCELLED,
                   frozenset({Role.ADMIN})),
        # Break-glass path: admins may put an order into any status
        Transition('admin_override', None, None, frozenset({Role.ADMIN})),
    )
}


def parse_status(value: Any) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        raise PreconditionFailed(f"Invalid order status: {value}")


def find_transition(current: OrderStatus, target: OrderStatus) -> Optional[Transition]:
    """Return the regular transition from ``current`` to ``target``, if there is one."""
    for transition in TRANSITIONS.values():
        if transition.source is current and transition.target is target:
            return transition
    return None


def check_transition(name: str, current: Any, role: Role) -> Transition:
    """Validate that ``role`` may take transition ``name`` from ``current``.

    Raises:
        AuthorizationDenied: If the role may not take this transition
        PreconditionFailed: If the order is not in the transition's source status
    """
    transition = TRANSITIONS[name]
    if role not in transition.roles:
        raise AuthorizationDenied(f"Not authorized to {name.replace('_', ' ')} this order")
    status = parse_status(current)
    if not transition.matches(status):
        if transition.source is OrderStatus.OPEN:
            raise PreconditionFailed("Order is no longer open")
        raise PreconditionFailed(
            f"Cannot {name} order in status: {status.value}"
        )
    return transition


def resolve_admin_update(
    order: Mapping[str, Any],
    updates: Mapping[str, Any],
    role: Role
) -> Dict[str, Any]:
    """Work out the column values an admin update will write.

    Status changes that match a regular transition (such as cancelling an
    open order) go through it; any other change is an override. Either way
    the freelancer assignment has to agree with the resulting status: moving
    to open or cancelled drops the freelancer, moving to in_progress or
    completed requires one.

    Args:
        order: Current order row
        updates: Fields supplied by the admin (None values are ignored)
        role: Role of the caller

    Returns:
        Dict of column name to new value
    """
    check_transition('admin_override', order['status'], role)

    fields = {k: v for k, v in updates.items() if v is not None}
    status = parse_status(fields.get('status', order['status']))
    fields['status'] = status.value

    freelancer_id = fields.get('freelancer_id', order['freelancer_id'])
    if status in ASSIGNED_STATUSES:
        if freelancer_id is None:
            raise PreconditionFailed(
                f"Order in status {status.value} requires an assigned freelancer"
            )
        fields['freelancer_id'] = freelancer_id
    else:
        if 'freelancer_id' in fields:
            raise PreconditionFailed(
                f"Order in status {status.value} cannot have an assigned freelancer"
            )
        fields['freelancer_id'] = None

    current = parse_status(order['status'])
    if status is not current:
        regular = find_transition(current, status)
        if regular is not None:
            check_transition(regular.name, current, role)
            logger.info(f"Admin {regular.name} on order {order['id']}")
        else:
            logger.warning(
                f"Admin override on order {order['id']}: "
                f"{current.value} -> {status.value}"
            )
    return fields
