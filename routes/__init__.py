from .health import health_bp
from .auth import auth_bp
from .skills import skills_bp
from .booking import booking_bp
