from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from models import db
from models.availability_slot import SLOT_AVAILABLE, AvailabilitySlot
from models.skill import Skill
from services.errors import (
    DuplicateSlot,
    InvalidSlotWindow,
    NotSkillOwner,
    SkillNotFound,
    SlotNotDeletable,
    SlotNotFound,
)
from utils.clock import utcnow


def _owned_skill(skill_id: int, instructor_id: int) -> Skill:
    skill = db.session.get(Skill, skill_id)
    if skill is None:
        raise SkillNotFound()
    if skill.instructor_id != instructor_id:
        raise NotSkillOwner()
    return skill


def create_slot(skill_id: int, instructor_id: int, start: datetime, end: datetime, now: datetime = None) -> AvailabilitySlot:
    skill = _owned_skill(skill_id, instructor_id)

    now = now or utcnow()
    if start >= end:
        raise InvalidSlotWindow("end_time must be after start_time")

    grace = timedelta(seconds=current_app.config.get("SLOT_PAST_GRACE_SECONDS", 60))
    if start < now - grace:
        raise InvalidSlotWindow("Slots cannot start in the past")

    slot = AvailabilitySlot(
        skill_id=skill.id,
        instructor_id=skill.instructor_id,
        start_time=start,
        end_time=end,
        status=SLOT_AVAILABLE,
        created_at=now,
    )
    db.session.add(slot)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateSlot()
    return slot


def list_open_slots(skill_id: int, now: datetime = None):
    now = now or utcnow()
    return (
        AvailabilitySlot.query
        .filter(
            AvailabilitySlot.skill_id == skill_id,
            AvailabilitySlot.status == SLOT_AVAILABLE,
            AvailabilitySlot.start_time > now,
        )
        .order_by(AvailabilitySlot.start_time.asc(), AvailabilitySlot.id.asc())
        .all()
    )


def list_slots(skill_id: int):
    return (
        AvailabilitySlot.query
        .filter_by(skill_id=skill_id)
        .order_by(AvailabilitySlot.start_time.asc(), AvailabilitySlot.id.asc())
        .all()
    )


def delete_slot(slot_id: int, actor_id: int, skill_id: int = None) -> None:
    slot = db.session.get(AvailabilitySlot, slot_id)
    if slot is None or (skill_id is not None and slot.skill_id != skill_id):
        raise SlotNotFound()
    if slot.instructor_id != actor_id:
        raise NotSkillOwner()

    # a booked slot is referenced by its booking for good
    if not slot.is_available:
        raise SlotNotDeletable()

    db.session.delete(slot)
    try:
        db.session.commit()
    except StaleDataError:
        # booked by someone between our read and the delete
        db.session.rollback()
        raise SlotNotDeletable()


def slot_to_dict(slot: AvailabilitySlot) -> dict:
    return {
        "id": slot.id,
        "skill_id": slot.skill_id,
        "instructor_id": slot.instructor_id,
        "start_time": slot.start_time.isoformat(),
        "end_time": slot.end_time.isoformat(),
        "status": slot.status,
    }
