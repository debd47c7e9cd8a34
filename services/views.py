"""
Live read models: generators yielding a fresh snapshot whenever it changes.

A snapshot is a display hint only. The booking transaction re-checks slot
status and balances itself and never trusts what a watcher showed.
"""
from flask import current_app

from models import db
from services import change_feed
from services.booking_lifecycle import booking_to_dict, list_bookings_for_user
from services.chat import list_messages, message_to_dict
from services.ledger import get_balance
from services.slots import list_open_slots, slot_to_dict

_NOTHING_YET = object()


def watch(topic: str, snapshot, poll_seconds: float = None, feed=None):
    """
    Yield ``snapshot()`` now, then again each time its value changes.

    Wakes on a change-feed notification for ``topic`` or every
    ``poll_seconds``, whichever comes first.
    """
    feed = feed or change_feed.feed
    if poll_seconds is None:
        poll_seconds = float(current_app.config.get("WATCH_POLL_SECONDS", 15))

    with feed.subscribe(topic) as sub:
        last = _NOTHING_YET
        while True:
            current = snapshot()
            # end the read transaction before parking: an idle stream must not
            # hold a pooled connection, and the next read sees newer commits
            db.session.rollback()
            if current != last:
                last = current
                yield current
            sub.wait(timeout=poll_seconds)


def watch_open_slots(skill_id: int, **kwargs):
    return watch(
        change_feed.slots_topic(skill_id),
        lambda: [slot_to_dict(s) for s in list_open_slots(skill_id)],
        **kwargs,
    )


def watch_balance(user_id: int, **kwargs):
    return watch(change_feed.balance_topic(user_id), lambda: get_balance(user_id), **kwargs)


def watch_bookings(user_id: int, **kwargs):
    return watch(
        change_feed.bookings_topic(user_id),
        lambda: [booking_to_dict(b) for b in list_bookings_for_user(user_id)],
        **kwargs,
    )


def watch_messages(booking_id: int, user_id: int, **kwargs):
    return watch(
        change_feed.chat_topic(booking_id),
        lambda: [message_to_dict(m) for m in list_messages(booking_id, user_id)],
        **kwargs,
    )
