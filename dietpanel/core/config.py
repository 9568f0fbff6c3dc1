"""
Application configuration.

All settings come from environment variables (or a ``.env`` file in the
project root) through pydantic-settings, with type validation and defaults.

Key concepts:
- BaseSettings: reads every field from the environment automatically
- computed_field: values derived from other fields (database DSN, CORS list)
- model_validator: refuses placeholder secrets outside local development
"""
import secrets
import warnings
from decimal import Decimal, InvalidOperation
from typing import Annotated, Any, Literal

from pydantic import (
    AnyUrl,
    BeforeValidator,
    HttpUrl,
    PostgresDsn,
    computed_field,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


def parse_cors(v: Any) -> list[str] | str:
    """
    Parse a CORS origins value.

    Accepts a comma separated string ("http://a,http://b") or a JSON list.

    Raises:
        ValueError: when the value is neither
    """
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",") if i.strip()]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    """
    Application settings.

    Priority: environment variables, then ``.env``, then the defaults below.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = secrets.token_urlsafe(32)
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        """CORS origins without trailing slashes."""
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS]

    PROJECT_NAME: str = "dietpanel"
    SENTRY_DSN: HttpUrl | None = None
    SITE_URL: str = "http://localhost:4321"

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = ""

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> PostgresDsn:
        return PostgresDsn.build(
            scheme="postgresql+psycopg",
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Session cookie
    SESSION_COOKIE_NAME: str = "auth_session"
    SESSION_EXPIRE_DAYS: int = 30
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    @computed_field  # type: ignore[prop-decorator]
    @property
    def session_cookie_secure(self) -> bool:
        return self.ENVIRONMENT != "local"

    # Login throttling
    LOGIN_MAX_FAILED_ATTEMPTS: int = 5
    LOGIN_LOCKOUT_MINUTES: int = 15
    LOGIN_RATE_LIMIT_ENABLED: bool = False
    LOGIN_RATE_LIMIT_PER_MINUTE: int = 20

    # First dietitian account, seeded by initial_data.py
    FIRST_DIETITIAN_EMAIL: str | None = None
    FIRST_DIETITIAN_PASSWORD: str | None = None

    # Feature flags: only the literal string "true" turns a flag on
    FF_PZK: str = "false"

    # SMTP (mail is logged instead of sent when SMTP_HOST is unset)
    SMTP_TLS: bool = True
    SMTP_SSL: bool = False
    SMTP_PORT: int = 587
    SMTP_HOST: str | None = None
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    EMAILS_FROM_EMAIL: str | None = None
    EMAILS_FROM_NAME: str | None = None

    # Redis (login rate limiter)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: str | None = None

    # Object storage for PZK PDFs
    OBJECT_STORAGE_PROVIDER: Literal["r2", "s3", "oss"] = "r2"
    OBJECT_STORAGE_BUCKET: str | None = None
    OBJECT_STORAGE_ACCESS_KEY_ID: str | None = None
    OBJECT_STORAGE_SECRET_ACCESS_KEY: str | None = None
    OBJECT_STORAGE_REGION: str = "auto"
    OBJECT_STORAGE_ENDPOINT: str | None = None

    # Tpay payments
    TPAY_CLIENT_ID: str | None = None
    TPAY_CLIENT_SECRET: str | None = None
    TPAY_ENVIRONMENT: Literal["sandbox", "production"] = "sandbox"
    TPAY_NOTIFICATION_URL: str | None = None
    TPAY_CERT_DOMAIN: str | None = None
    TPAY_SECURITY_CODE: str | None = None
    TPAY_CERT_CACHE_TTL_SECONDS: int = 10 * 60
    TPAY_CERT_FETCH_TIMEOUT_SECONDS: float = 2.0
    TPAY_MAX_CERT_BYTES: int = 64 * 1024
    TPAY_WEBHOOK_MAX_BODY_BYTES: int = 16 * 1024

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tpay_api_base_url(self) -> str:
        if self.TPAY_ENVIRONMENT == "production":
            return "https://api.tpay.com"
        return "https://openapi.sandbox.tpay.com"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def tpay_cert_domain(self) -> str:
        if self.TPAY_CERT_DOMAIN:
            return self.TPAY_CERT_DOMAIN
        if self.TPAY_ENVIRONMENT == "production":
            return "secure.tpay.com"
        return "secure.sandbox.tpay.com"

    # PZK prices in PLN
    PZK_MODULE_1_PRICE: str | None = None
    PZK_MODULE_2_PRICE: str | None = None
    PZK_MODULE_3_PRICE: str | None = None
    PZK_BUNDLE_ALL_PRICE: str | None = None
    PZK_PURCHASE_CTA_BASE_URL: str = "https://paulinamaciak.pl/pzk"

    def feature_enabled(self, flag: str) -> bool:
        """Return True only when ``FF_<flag>`` is exactly "true"."""
        return getattr(self, f"FF_{flag}", None) == "true"

    def price_for(self, item: str) -> Decimal:
        """
        Look up the configured price for a purchasable item.

        Args:
            item: item code such as "PZK_MODULE_2" or "PZK_BUNDLE_ALL"

        Raises:
            ValueError: price missing, malformed or not positive
        """
        key = f"{item}_PRICE"
        raw = getattr(self, key, None)
        if not raw:
            raise ValueError(f"Missing price configuration: {key}")
        try:
            price = Decimal(str(raw))
        except InvalidOperation:
            raise ValueError(f"Invalid price for {key}: {raw}")
        if price <= 0:
            raise ValueError(f"Invalid price for {key}: {raw}")
        return price.quantize(Decimal("0.01"))

    def _check_default_secret(self, var_name: str, value: str | None) -> None:
        """
        Refuse the "changethis" placeholder.

        Local environments only get a warning, other environments fail fast.

        Raises:
            ValueError: placeholder used outside local
        """
        if value == "changethis":
            message = (
                f'The value of {var_name} is "changethis", '
                "for security, please change it, at least for deployments."
            )
            if self.ENVIRONMENT == "local":
                warnings.warn(message, stacklevel=1)
            else:
                raise ValueError(message)

    def _require_secret_key(self) -> None:
        """
        Session ids are keyed by SECRET_KEY, so every worker and every restart
        must share one value. The per-process random default is only good for
        local development.

        Raises:
            ValueError: SECRET_KEY not provided outside local
        """
        if self.ENVIRONMENT != "local" and "SECRET_KEY" not in self.model_fields_set:
            raise ValueError(
                f"SECRET_KEY must be set when ENVIRONMENT is {self.ENVIRONMENT!r}"
            )

    @model_validator(mode="after")
    def _enforce_non_default_secrets(self) -> Self:
        self._require_secret_key()
        self._check_default_secret("SECRET_KEY", self.SECRET_KEY)
        self._check_default_secret("POSTGRES_PASSWORD", self.POSTGRES_PASSWORD)
        self._check_default_secret("TPAY_CLIENT_SECRET", self.TPAY_CLIENT_SECRET)

        return self


settings = Settings()  # type: ignore
