"""
In-process change notifications.

SQLAlchemy session events record which read models a flush touched
("slots:<skill_id>", "balance:<user_id>", ...). The topics are dropped if the
transaction rolls back and handed to subscribers once it commits, so a
subscriber never hears about a change that did not happen. Commits made by
other processes are not seen here; watchers cover those by polling.
"""
import queue
import threading

from sqlalchemy import event
from sqlalchemy.orm import Session as OrmSession

from models.availability_slot import AvailabilitySlot
from models.booking import Booking
from models.chat_message import ChatMessage
from models.user import User

_PENDING_KEY = "change_feed_topics"


def slots_topic(skill_id) -> str:
    return f"slots:{skill_id}"


def balance_topic(user_id) -> str:
    return f"balance:{user_id}"


def bookings_topic(user_id) -> str:
    return f"bookings:{user_id}"


def chat_topic(booking_id) -> str:
    return f"chat:{booking_id}"


def topics_for(obj) -> set:
    if isinstance(obj, User):
        return {balance_topic(obj.id)}
    if isinstance(obj, AvailabilitySlot):
        return {slots_topic(obj.skill_id)}
    if isinstance(obj, Booking):
        return {bookings_topic(obj.student_id), bookings_topic(obj.instructor_id)}
    if isinstance(obj, ChatMessage):
        return {chat_topic(obj.booking_id)}
    return set()


class Subscription:
    def __init__(self, feed, topics):
        self.feed = feed
        self.topics = frozenset(topics)
        self._queue = queue.Queue()

    def deliver(self, topic: str) -> None:
        self._queue.put(topic)

    def wait(self, timeout: float = None) -> set:
        """
        Block until something is delivered or ``timeout`` passes.
        Returns every topic delivered so far (empty on timeout).
        """
        try:
            first = self._queue.get(timeout=timeout)
        except queue.Empty:
            return set()

        topics = {first}
        while True:
            try:
                topics.add(self._queue.get_nowait())
            except queue.Empty:
                return topics

    def close(self) -> None:
        self.feed.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False


class ChangeFeed:
    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers = {}

    def subscribe(self, *topics) -> Subscription:
        sub = Subscription(self, topics)
        with self._lock:
            for topic in sub.topics:
                self._subscribers.setdefault(topic, set()).add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            for topic in sub.topics:
                subs = self._subscribers.get(topic)
                if not subs:
                    continue
                subs.discard(sub)
                if not subs:
                    del self._subscribers[topic]

    def publish(self, topics) -> None:
        with self._lock:
            targets = [(topic, list(self._subscribers.get(topic, ()))) for topic in topics]
        for topic, subs in targets:
            for sub in subs:
                sub.deliver(topic)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))


feed = ChangeFeed()


@event.listens_for(OrmSession, "after_flush")
def _collect_topics(session, flush_context):
    pending = session.info.setdefault(_PENDING_KEY, set())
    for obj in list(session.new) + list(session.dirty) + list(session.deleted):
        pending.update(topics_for(obj))


@event.listens_for(OrmSession, "after_commit")
def _publish_topics(session):
    topics = session.info.pop(_PENDING_KEY, None)
    if topics:
        feed.publish(topics)


@event.listens_for(OrmSession, "after_rollback")
def _discard_topics(session):
    session.info.pop(_PENDING_KEY, None)
