from flask import current_app

from models import db
from models.user import User
from services.errors import ActorNotFound, InsufficientBalance


def initial_points() -> int:
    return int(current_app.config.get("SIGNUP_POINTS", 100))


def get_balance(user_id: int) -> int:
    user = db.session.get(User, user_id)
    if user is None:
        raise ActorNotFound()
    return user.points


def transfer(payer: User, payee: User, amount: int) -> None:
    """
    Move ``amount`` points between two rows already loaded in the current
    transaction. Nothing is flushed here; the caller commits or rolls back.
    """
    if not isinstance(amount, int) or amount <= 0:
        raise ValueError("amount must be a positive integer")
    if payer.id == payee.id:
        raise ValueError("payer and payee must differ")

    balance = payer.points or 0
    if balance < amount:
        raise InsufficientBalance(price=amount, balance=balance)

    payer.points = balance - amount
    payee.points = (payee.points or 0) + amount
