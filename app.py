import logging

from flask import Flask, jsonify
from config import Config, check_required_secrets
from routes import health_bp, auth_bp

from models import db
from flask_migrate import Migrate
from security.crypto import CryptoError, engine_from_config

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Refuse to boot production on the development secrets
    check_required_secrets(app.config)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # One engine per app
    app.extensions["encryption_engine"] = engine_from_config(app.config)

    @app.errorhandler(CryptoError)
    def _crypto_failure(exc):
        # Never hand back partially decoded data
        logger.error("Stored secret could not be read: %s", type(exc).__name__)
        return jsonify(error="Stored secret could not be decrypted"), 500

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Cache-Control"] = "no-store"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_cli(app)

    return app

#-------------------------
import click
from models.user import User

def register_cli(app):
    @app.cli.command("unlock-user")
    @click.argument("name")
    def unlock_user(name):
        """Clear the failed-login counter and any lock for a user."""
        from security.bruteforce import reset_attempts

        user = User.query.filter_by(name=name.strip()).first()
        if not user:
            print("User not found")
            return

        reset_attempts(user)
        print(f"{user.name} unlocked")

    @app.cli.command("check-entries")
    def check_entries():
        """Try to decrypt every stored entry and report the unreadable ones."""
        from models.password_entry import PasswordEntry
        from security.crypto import get_engine

        engine = get_engine()
        bad = 0
        for entry in PasswordEntry.query.order_by(PasswordEntry.id).all():
            try:
                entry.reveal(engine)
            except CryptoError as exc:
                bad += 1
                print(f"entry {entry.id}: {type(exc).__name__}")
        print(f"{bad} unreadable entries")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
