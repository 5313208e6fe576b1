"""Authorization policy for marketplace resources.

Every predicate is a pure function of the caller and the row being touched.
Rows are asyncpg records or plain dicts. A missing field never grants access.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional


class Role(str, Enum):
    CUSTOMER = "customer"
    FREELANCER = "freelancer"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> Optional["Role"]:
        """Return the matching role or None for unknown values."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass(frozen=True)
class Caller:
    """Authenticated identity of the current request."""
    user_id: int
    role: Role


def _field(row: Optional[Mapping[str, Any]], name: str) -> Any:
    if row is None:
        return None
    try:
        return row[name]
    except KeyError:
        return None


def _same_user(caller: Optional[Caller], user_id: Any) -> bool:
    return (
        caller is not None
        and caller.user_id is not None
        and user_id is not None
        and caller.user_id == user_id
    )


def can_moderate(caller: Optional[Caller]) -> bool:
    """Admins may moderate anything."""
    return caller is not None and caller.role is Role.ADMIN


def can_view_order(caller: Optional[Caller], order: Optional[Mapping[str, Any]]) -> bool:
    if caller is None or order is None:
        return False
    if can_moderate(caller):
        return True
    if caller.role is Role.CUSTOMER:
        return _same_user(caller, _field(order, 'customer_id'))
    if caller.role is Role.FREELANCER:
        return (
            _field(order, 'status') == 'open'
            or _same_user(caller, _field(order, 'freelancer_id'))
        )
    return False


def can_message(caller: Optional[Caller], order: Optional[Mapping[str, Any]]) -> bool:
    """Customer owning the order, or a freelancer assigned to it / eligible to bid on it."""
    if caller is None or order is None:
        return False
    if caller.role is Role.CUSTOMER:
        return _same_user(caller, _field(order, 'customer_id'))
    if caller.role is Role.FREELANCER:
        if _same_user(caller, _field(order, 'freelancer_id')):
            return True
        return _field(order, 'status') == 'open' and _field(order, 'freelancer_id') is None
    return False


def can_archive(caller: Optional[Caller], order: Optional[Mapping[str, Any]]) -> bool:
    if caller is None or order is None:
        return False
    if _field(order, 'status') != 'completed':
        return False
    return can_moderate(caller) or _same_user(caller, _field(order, 'customer_id'))


def can_manage_responses(caller: Optional[Caller], order: Optional[Mapping[str, Any]]) -> bool:
    """List, accept and reject responses on an order."""
    if caller is None or order is None:
        return False
    return can_moderate(caller) or _same_user(caller, _field(order, 'customer_id'))


def can_complete_order(caller: Optional[Caller], order: Optional[Mapping[str, Any]]) -> bool:
    return can_manage_responses(caller, order)


def can_edit_message(caller: Optional[Caller], message: Optional[Mapping[str, Any]]) -> bool:
    if caller is None or message is None:
        return False
    return can_moderate(caller) or _same_user(caller, _field(message, 'sender_id'))


def can_view_archived(caller: Optional[Caller], archived: Optional[Mapping[str, Any]]) -> bool:
    if caller is None or archived is None:
        return False
    return (
        can_moderate(caller)
        or _same_user(caller, _field(archived, 'customer_id'))
        or _same_user(caller, _field(archived, 'freelancer_id'))
    )


def can_review_archived(caller: Optional[Caller], archived: Optional[Mapping[str, Any]]) -> bool:
    if caller is None or archived is None:
        return False
    return can_moderate(caller) or _same_user(caller, _field(archived, 'customer_id'))


__all__ = [
    'Role',
    'Caller',
    'can_moderate',
    'can_view_order',
    'can_message',
    'can_archive',
    'can_manage_responses',
    'can_complete_order',
    'can_edit_message',
    'can_view_archived',
    'can_review_archived'
]
