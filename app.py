from flask import Flask, jsonify
from config import Config
from routes import health_bp, auth_bp, skills_bp, booking_bp

from models import db
from flask_migrate import Migrate
from utils.auth_context import load_current_user
from security.csrf import csrf_protect
from services.errors import BookingError

# registers the session listeners that feed the live views
import services.change_feed  # noqa: F401


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(skills_bp)
    app.register_blueprint(booking_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _load_user():
        load_current_user()

    # runs after _load_user: only logged-in writes need the token
    app.before_request(csrf_protect)

    @app.errorhandler(BookingError)
    def _booking_error(err):
        if err.http_status >= 500 and not err.retryable:
            app.logger.error("%s: %s %s", err.code, err.message, err.details)
        return jsonify(err.to_dict()), err.http_status

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        # CSP can be strict if you serve frontend separately; for API it's fine to keep minimal:
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
import click
from models.user import User

def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables (local development without migrations)."""
        db.create_all()
        print("Database initialised")

    @app.cli.command("balance")
    @click.argument("email")
    def show_balance(email):
        """Print a user's points balance."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            print("User not found")
            return
        print(f"{user.email}: {user.points} points")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002, threaded=True)
