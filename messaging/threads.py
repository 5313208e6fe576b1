"""Conversation thread summaries for an order."""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional


def count_unread(
    messages: Iterable[Mapping[str, Any]],
    caller_id: int,
    counterpart_id: int
) -> int:
    """Count messages from ``counterpart_id`` the caller has not answered yet.

    A message is unread when it was sent to the caller after the caller's
    latest message to that counterpart. If the caller never wrote to the
    counterpart, every message from them is unread.
    """
    messages = list(messages)
    last_reply: Optional[datetime] = None
    for m in messages:
        if m['sender_id'] == caller_id and m['receiver_id'] == counterpart_id:
            if last_reply is None or m['created_at'] > last_reply:
                last_reply = m['created_at']

    return sum(
        1 for m in messages
        if m['sender_id'] == counterpart_id
        and m['receiver_id'] == caller_id
        and (last_reply is None or m['created_at'] > last_reply)
    )


def summarize_threads(
    messages: Iterable[Mapping[str, Any]],
    caller_id: int
) -> List[Dict[str, Any]]:
    """Group an order's messages by the caller's counterpart.

    Args:
        messages: Rows with sender_id, receiver_id, content, created_at and
            optionally sender_name/receiver_name
        caller_id: The user the summary is for

    Returns:
        One entry per counterpart, most recently active first
    """
    threads: Dict[int, List[Mapping[str, Any]]] = {}
    names: Dict[int, Any] = {}
    for m in messages:
        if m['sender_id'] == caller_id:
            other, name_key = m['receiver_id'], 'receiver_name'
        elif m['receiver_id'] == caller_id:
            other, name_key = m['sender_id'], 'sender_name'
        else:
            continue
        threads.setdefault(other, []).append(m)
        if m.get(name_key) is not None:
            names[other] = m[name_key]

    summaries = []
    for other, thread in threads.items():
        last = max(thread, key=lambda m: m['created_at'])
        summaries.append({
            'participant_id': other,
            'participant_name': names.get(other),
            'last_message': last['content'],
            'last_message_time': last['created_at'],
            'unread_count': count_unread(thread, caller_id, other)
        })

    summaries.sort(key=lambda s: s['last_message_time'], reverse=True)
    return summaries
