from flask import Blueprint, request, jsonify, g

from services import skills as skill_service
from services import slots as slot_service
from services.errors import NotSkillOwner
from services.views import watch_open_slots
from utils.audit import log_event
from utils.auth_context import login_required
from utils.clock import parse_iso
from utils.sse import sse_response

skills_bp = Blueprint("skills", __name__, url_prefix="/skills")


# ---------- catalogue ----------
@skills_bp.post("")
@login_required
def create_skill():
    data = request.get_json(silent=True) or {}
    cleaned, errors = skill_service.validate_skill_input(data)
    if errors:
        return jsonify(error="Invalid skill", details=errors), 400

    skill = skill_service.create_skill(g.user, **cleaned)
    log_event("SKILL_CREATE", user_id=g.user.id, entity="skill", entity_id=skill.id)
    return jsonify(skill_service.skill_to_dict(skill)), 201


@skills_bp.get("")
@login_required
def list_skills():
    sort = request.args.get("sort", "title")
    if sort not in skill_service.SORT_OPTIONS:
        return jsonify(error=f"sort must be one of {', '.join(skill_service.SORT_OPTIONS)}"), 400

    rows = skill_service.list_skills(
        category=request.args.get("category"),
        query=request.args.get("q"),
        sort=sort,
    )
    return jsonify([skill_service.skill_to_dict(s) for s in rows]), 200


@skills_bp.get("/categories")
@login_required
def list_categories():
    return jsonify(skill_service.list_categories()), 200


@skills_bp.get("/mine")
@login_required
def my_skills():
    rows = skill_service.list_skills_for_instructor(g.user.id)
    return jsonify([skill_service.skill_to_dict(s) for s in rows]), 200


@skills_bp.get("/<int:skill_id>")
@login_required
def get_skill(skill_id: int):
    return jsonify(skill_service.skill_to_dict(skill_service.get_skill(skill_id))), 200


# ---------- INSTRUCTOR: availability ----------
@skills_bp.post("/<int:skill_id>/slots")
@login_required
def create_slot(skill_id: int):
    data = request.get_json(silent=True) or {}
    start_time = data.get("start_time")
    end_time = data.get("end_time")
    if not start_time or not end_time:
        return jsonify(error="start_time and end_time are required"), 400

    try:
        st = parse_iso(start_time)
        et = parse_iso(end_time)
    except ValueError:
        return jsonify(error="Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"), 400

    slot = slot_service.create_slot(skill_id, g.user.id, st, et)
    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id)
    return jsonify(slot_service.slot_to_dict(slot)), 201


@skills_bp.get("/<int:skill_id>/slots/all")
@login_required
def list_all_slots(skill_id: int):
    skill = skill_service.get_skill(skill_id)
    if skill.instructor_id != g.user.id:
        raise NotSkillOwner()
    return jsonify([slot_service.slot_to_dict(s) for s in slot_service.list_slots(skill_id)]), 200


@skills_bp.delete("/<int:skill_id>/slots/<int:slot_id>")
@login_required
def delete_slot(skill_id: int, slot_id: int):
    skill = skill_service.get_skill(skill_id)
    if skill.instructor_id != g.user.id:
        raise NotSkillOwner()

    slot_service.delete_slot(slot_id, g.user.id, skill_id=skill_id)
    log_event("SLOT_DELETE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted"), 200


# ---------- STUDENTS: open slots ----------
@skills_bp.get("/<int:skill_id>/slots")
@login_required
def list_open_slots(skill_id: int):
    skill_service.get_skill(skill_id)
    return jsonify([slot_service.slot_to_dict(s) for s in slot_service.list_open_slots(skill_id)]), 200


@skills_bp.get("/<int:skill_id>/slots/stream")
@login_required
def stream_open_slots(skill_id: int):
    skill_service.get_skill(skill_id)
    return sse_response(watch_open_slots(skill_id), event="slots")
