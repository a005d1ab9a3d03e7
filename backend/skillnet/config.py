"""Application settings and validation."""

import os
from pathlib import Path

_DEFAULT_SECRET = "change_me_for_prod_skillnet_dev_signing_key"
_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'skillnet.db'}"


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    ENV: str
    DATABASE_URL: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_ISSUER: str
    JWT_AUDIENCE: str
    JWT_EXPIRE_MINUTES: int
    REFRESH_TOKEN_EXPIRE_DAYS: int
    REFRESH_TOKENS_ENABLED: bool
    PASSWORD_MIN_LENGTH: int
    PASSWORD_REQUIRE_DIGIT: bool
    PASSWORD_REQUIRE_LOWERCASE: bool
    PASSWORD_REQUIRE_UPPERCASE: bool
    PASSWORD_REQUIRE_NON_ALPHANUMERIC: bool
    ALLOW_DEV_CORS: bool
    CORS_ALLOW_ORIGINS: str
    LOG_LEVEL: str

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", _DEFAULT_DB_URL)
        self.JWT_SECRET = os.getenv("JWT_SECRET", _DEFAULT_SECRET)
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_ISSUER = os.getenv("JWT_ISSUER", "SkillNet")
        self.JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "SkillNetUsers")
        self.JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "60"))
        self.REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
        self.REFRESH_TOKENS_ENABLED = _flag("REFRESH_TOKENS_ENABLED", "true")
        self.PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))
        self.PASSWORD_REQUIRE_DIGIT = _flag("PASSWORD_REQUIRE_DIGIT", "true")
        self.PASSWORD_REQUIRE_LOWERCASE = _flag("PASSWORD_REQUIRE_LOWERCASE", "true")
        self.PASSWORD_REQUIRE_UPPERCASE = _flag("PASSWORD_REQUIRE_UPPERCASE", "true")
        self.PASSWORD_REQUIRE_NON_ALPHANUMERIC = _flag("PASSWORD_REQUIRE_NON_ALPHANUMERIC", "true")
        self.ALLOW_DEV_CORS = _flag("ALLOW_DEV_CORS", "true")
        self.CORS_ALLOW_ORIGINS = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:5173,http://localhost:3000")
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and self.JWT_SECRET == _DEFAULT_SECRET:
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.JWT_EXPIRE_MINUTES <= 0:
            raise RuntimeError("JWT_EXPIRE_MINUTES must be positive")
        if self.REFRESH_TOKEN_EXPIRE_DAYS <= 0:
            raise RuntimeError("REFRESH_TOKEN_EXPIRE_DAYS must be positive")
        if self.PASSWORD_MIN_LENGTH < 1:
            raise RuntimeError("PASSWORD_MIN_LENGTH must be at least 1")

    @property
    def cors_origins(self):
        return [o.strip() for o in self.CORS_ALLOW_ORIGINS.split(",") if o.strip()]


settings = Settings()
