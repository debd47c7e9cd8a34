from sqlalchemy import func, or_

from models import db
from models.skill import Skill
from models.user import User
from services.errors import SkillNotFound

SORT_OPTIONS = ("title", "newest")


def _positive_int(value):
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if isinstance(value, float) and value != number:
        return None
    return number if number > 0 else None


def validate_skill_input(data: dict):
    """Returns (cleaned, errors)."""
    errors = []
    cleaned = {}
    for field, limit in (("title", 120), ("description", 5000), ("category", 60)):
        value = data.get(field)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{field} is required")
        elif len(value.strip()) > limit:
            errors.append(f"{field} must be at most {limit} characters")
        else:
            cleaned[field] = value.strip()

    price = _positive_int(data.get("points_price"))
    if price is None:
        errors.append("points_price must be a positive integer")
    cleaned["points_price"] = price

    duration = _positive_int(data.get("duration_minutes"))
    if duration is None:
        errors.append("duration_minutes must be a positive integer")
    cleaned["duration_minutes"] = duration

    return cleaned, errors


def create_skill(instructor: User, title: str, description: str, category: str,
                 points_price: int, duration_minutes: int) -> Skill:
    skill = Skill(
        instructor_id=instructor.id,
        title=title,
        description=description,
        category=category,
        points_price=points_price,
        duration_minutes=duration_minutes,
    )
    db.session.add(skill)
    db.session.commit()
    return skill


def get_skill(skill_id: int) -> Skill:
    skill = db.session.get(Skill, skill_id)
    if skill is None:
        raise SkillNotFound()
    return skill


def list_skills(category: str = None, query: str = None, sort: str = "title"):
    q = Skill.query
    if category:
        q = q.filter(Skill.category == category)

    if query and query.strip():
        pattern = f"%{query.strip().lower()}%"
        q = q.filter(or_(
            func.lower(Skill.title).like(pattern),
            func.lower(Skill.description).like(pattern),
            func.lower(Skill.category).like(pattern),
        ))

    if sort == "newest":
        q = q.order_by(Skill.created_at.desc(), Skill.id.desc())
    else:
        q = q.order_by(func.lower(Skill.title).asc(), Skill.id.asc())
    return q.all()


def list_categories():
    rows = db.session.query(Skill.category).distinct().order_by(Skill.category.asc()).all()
    return [r[0] for r in rows]


def list_skills_for_instructor(instructor_id: int):
    return (
        Skill.query
        .filter_by(instructor_id=instructor_id)
        .order_by(Skill.created_at.desc(), Skill.id.desc())
        .all()
    )


def skill_to_dict(skill: Skill) -> dict:
    instructor = skill.instructor
    return {
        "id": skill.id,
        "title": skill.title,
        "description": skill.description,
        "category": skill.category,
        "points_price": skill.points_price,
        "duration_minutes": skill.duration_minutes,
        "instructor_id": skill.instructor_id,
        "instructor_name": instructor.display_name if instructor else None,
        "created_at": skill.created_at.isoformat(),
    }
