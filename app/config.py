import logging

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_INSECURE_DEFAULT = "change-me"
_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_env: str = "production"
    app_debug: bool = False
    app_secret_key: str = _INSECURE_DEFAULT

    database_url: str = "postgresql+asyncpg://monitor:monitor@db:5432/team_monitor"

    jwt_secret_key: str = _INSECURE_DEFAULT
    jwt_algorithm: str = "RS256"

    # PEM-encoded RSA public key (or a path to one) used to verify RS256 tokens
    jwt_public_key: str = ""

    cors_origins: list[str] = ["http://localhost:3000"]

    # Cookie carrying the JWT issued by the auth service
    cookie_name: str = "access_token"

    # Redis (used for the token blacklist)
    redis_url: str = "redis://redis:6379/0"

    # Attempts for a slot operation before giving up on a version conflict
    slot_operation_max_retries: int = 3

    # First admin account, created at startup when no admin exists
    admin_seed_username: str = "admin"
    admin_seed_email: str = "admin@example.com"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    def _resolve_public_key(self) -> None:
        """Load the RSA public key from disk when the setting is a file path."""
        import os

        val = self.jwt_public_key
        if val and not val.startswith("-----") and os.path.isfile(val):
            with open(val) as f:
                object.__setattr__(self, "jwt_public_key", f.read())

        if self.jwt_algorithm == "RS256" and not self.jwt_public_key:
            if self.app_env == "production":
                raise ValueError("RS256 requires JWT_PUBLIC_KEY in production.")
            logger.warning(
                "SECURITY: JWT_PUBLIC_KEY is not configured; RS256 tokens "
                "cannot be verified until it is set."
            )

    def validate_secrets(self) -> None:
        """Raise if running with insecure default secrets."""
        insecure = []
        if self.app_secret_key == _INSECURE_DEFAULT:
            insecure.append("APP_SECRET_KEY")
        # jwt_secret_key only matters for HS256
        if self.jwt_algorithm == "HS256" and self.jwt_secret_key == _INSECURE_DEFAULT:
            insecure.append("JWT_SECRET_KEY")
        if insecure:
            if self.app_env == "production":
                raise ValueError(
                    f"Insecure secrets in production, configure: {', '.join(insecure)}"
                )
            logger.warning(
                "SECURITY: using insecure default secrets (%s). "
                "Set the environment variables before going to production.",
                ", ".join(insecure),
            )

        if self.app_env == "production":
            if self.jwt_algorithm == "HS256" and len(self.jwt_secret_key) < _MIN_SECRET_LENGTH:
                raise ValueError(
                    f"JWT_SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters."
                )
            if len(self.app_secret_key) < _MIN_SECRET_LENGTH:
                raise ValueError(
                    f"APP_SECRET_KEY must be at least {_MIN_SECRET_LENGTH} characters."
                )

        self._resolve_public_key()


settings = Settings()
