from models import db
from models.booking import Booking
from models.chat_message import ChatMessage
from models.user import User
from services.errors import BookingNotFound

MAX_MESSAGE_LENGTH = 2000


def _participant_booking(booking_id: int, user_id: int) -> Booking:
    booking = db.session.get(Booking, booking_id)
    # non-participants get the same answer as a missing booking
    if booking is None or not booking.involves(user_id):
        raise BookingNotFound()
    return booking


def post_message(booking_id: int, sender: User, text: str) -> ChatMessage:
    booking = _participant_booking(booking_id, sender.id)

    if not isinstance(text, str) or not text.strip():
        raise ValueError("Message text is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValueError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")

    message = ChatMessage(
        booking_id=booking.id,
        sender_id=sender.id,
        sender_name=sender.display_name,
        text=text,
    )
    db.session.add(message)
    db.session.commit()
    return message


def list_messages(booking_id: int, user_id: int):
    _participant_booking(booking_id, user_id)
    return (
        ChatMessage.query
        .filter_by(booking_id=booking_id)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .all()
    )


def delete_transcript(booking_id: int) -> int:
    """Stages deletion of every message of a booking. The caller commits."""
    messages = ChatMessage.query.filter_by(booking_id=booking_id).all()
    for m in messages:
        db.session.delete(m)
    return len(messages)


def message_to_dict(message: ChatMessage) -> dict:
    return {
        "id": message.id,
        "booking_id": message.booking_id,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "text": message.text,
        "created_at": message.created_at.isoformat(),
    }
