from .db import db
from .user import User
from .audit_log import AuditLog
from .session import Session
from .skill import Skill
from .availability_slot import AvailabilitySlot
from .booking import Booking
from .chat_message import ChatMessage
