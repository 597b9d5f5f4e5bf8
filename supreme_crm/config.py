import os


def _database_url():
    """DATABASE_URL with the legacy ``postgres://`` scheme rewritten.

    Hosted Postgres add-ons still hand out ``postgres://`` URLs, which
    SQLAlchemy refuses.
    """
    url = os.environ.get("DATABASE_URL", "")
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url or None


def _env_int(name, default):
    return int(os.environ.get(name, default))


class Config:
    """Settings every environment starts from."""

    SECRET_KEY = os.environ.get("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5001")

    # CSV uploads (megabytes); Flask answers 413 above the cap
    LEAD_UPLOAD_MAX_MB = _env_int("LEAD_UPLOAD_MAX_MB", 5)
    MAX_CONTENT_LENGTH = LEAD_UPLOAD_MAX_MB * 1024 * 1024
    IMPORT_ERROR_PREVIEW = _env_int("IMPORT_ERROR_PREVIEW", 10)

    HOT_LEAD_SCORE = _env_int("HOT_LEAD_SCORE", 70)

    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Raise RuntimeError naming any unset SECRET_KEY / DATABASE_URL."""
        unset = [name for name in ("SECRET_KEY", "DATABASE_URL") if not os.environ.get(name)]
        if unset:
            raise RuntimeError(f"Unset environment variables: {', '.join(unset)}")


class DevConfig(Config):
    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SQLALCHEMY_DATABASE_URI = Config.SQLALCHEMY_DATABASE_URI or "sqlite:///supreme_crm.db"


class TestConfig(Config):
    """pytest: in-memory SQLite, no CSRF, no rate limits."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "not-a-real-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    APP_BASE_URL = "http://localhost"
    IMPORT_ERROR_PREVIEW = 10
    HOT_LEAD_SCORE = 70
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        pass


class ProdConfig(Config):
    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
