import os

base_dir = os.path.abspath(os.path.dirname(__file__))


def _env_list(name, default):
    raw = os.environ.get(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """
    Default settings, read from the environment when the module is imported.
    create_app() layers a dict of overrides on top of these.
    """
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", "sqlite:///" + os.path.join(base_dir, "parking.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # An empty REDIS_URL turns the dashboard cache off
    REDIS_URL = os.environ.get("REDIS_URL", "redis://localhost:6379/0")
    DASHBOARD_CACHE_SECONDS = int(os.environ.get("DASHBOARD_CACHE_SECONDS", "60"))

    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL", "redis://localhost:6379/0")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND", "redis://localhost:6379/0")
    STATUS_SWEEP_MINUTE = os.environ.get("STATUS_SWEEP_MINUTE", "0")

    # People allowed to receive cash/UPI at the counter
    STAFF_ROSTER = _env_list("STAFF_ROSTER", "Balu,Mani")
    DEFAULT_ADVANCE_AMOUNT = float(os.environ.get("DEFAULT_ADVANCE_AMOUNT", "5000"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")
