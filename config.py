import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

DEV_SECRET_PLACEHOLDER = "dev-only-change-me"

# Stored ciphertext is only readable with this exact KDF cost
REQUIRED_KDF_ITERATIONS = 100000

class Config:
    # Deployment environment ("development", "production", ...)
    APP_ENV = os.getenv("APP_ENV", "development").strip().lower()

    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", DEV_SECRET_PLACEHOLDER)

    # Process-wide secret used as the KDF password for stored secrets.
    # Changing it makes every existing ciphertext unreadable.
    PWD_SECRET_KEY = os.getenv("PWD_SECRET_KEY", DEV_SECRET_PLACEHOLDER)
    PWD_KDF_ITERATIONS = int(os.getenv("PWD_KDF_ITERATIONS", str(REQUIRED_KDF_ITERATIONS)))
    # Raise on malformed ciphertext instead of returning ""
    PWD_STRICT_DECRYPT = os.getenv("PWD_STRICT_DECRYPT", "true").lower() == "true"

    # SQLite database file stored next to the app as passvault.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "passvault.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Brute-force protection: compare-and-swap retries on the attempt counter
    LOGIN_STATE_MAX_RETRIES = int(os.getenv("LOGIN_STATE_MAX_RETRIES", "5"))

    # Entry passwords shorter than this get a warning
    PASSWORD_WARN_LENGTH = 12

    # Basic app settings
    DEBUG = False


def is_production(config) -> bool:
    return (config.get("APP_ENV") or "").lower() in {"prod", "production"}


def check_required_secrets(config) -> None:
    """
    Production must not run on the development fallbacks or a
    non-standard KDF cost.
    """
    if not is_production(config):
        return

    missing = [
        name for name in ("SECRET_KEY", "PWD_SECRET_KEY")
        if not config.get(name) or config.get(name) == DEV_SECRET_PLACEHOLDER
    ]
    if missing:
        raise RuntimeError(
            "Missing required environment variables for production: " + ", ".join(missing)
        )

    iterations = config.get("PWD_KDF_ITERATIONS", REQUIRED_KDF_ITERATIONS)
    if iterations != REQUIRED_KDF_ITERATIONS:
        raise RuntimeError(
            f"PWD_KDF_ITERATIONS must be {REQUIRED_KDF_ITERATIONS} in production (got {iterations})"
        )
