from decimal import Decimal
from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    normalized = urlunparse(
        parsed._replace(
            scheme=scheme,
            query=new_query,
        )
    )
    return normalized


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/pitchfund.db",
        description="SQLAlchemy compatible database URL",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Supabase pooled Postgres connection string for production runs",
    )
    supabase_jwt_secret: str = Field(
        default="dev-jwt-secret-change-me",
        description="Shared secret used to verify access tokens issued by the auth provider",
    )
    jwt_audience: str = Field(
        default="authenticated",
        description="Expected audience claim on access tokens",
    )
    jwt_algorithm: str = Field(default="HS256", description="Access token signing algorithm")
    base_url: str = Field(
        default="http://localhost:3000",
        description="Public site URL used to build Stripe redirect links",
    )
    stripe_secret_key: str | None = Field(
        default=None,
        description="Stripe secret API key",
    )
    stripe_webhook_secret: str | None = Field(
        default=None,
        description="Signing secret of the Stripe webhook endpoint",
    )
    stripe_api_version: str = Field(
        default="2023-10-16",
        description="Pinned Stripe API version",
    )
    currency: str = Field(default="pln", description="ISO currency code used for checkout")
    payment_method_types: list[str] | str = Field(
        default_factory=lambda: ["card", "blik"],
        description="Comma-separated list or array of Checkout payment method types",
    )
    platform_fee_percent: Decimal = Field(
        default=Decimal("0"),
        description="Application fee kept by the platform on each online payment (percent)",
        ge=0,
        le=100,
    )
    connect_country: str = Field(
        default="PL",
        description="Country of newly created Connect Express accounts",
    )
    checkout_hold_minutes: int = Field(
        default=30,
        description="Minutes a checkout keeps a spot reserved (Stripe minimum is 30)",
        ge=30,
        le=24 * 60,
    )
    overflow_policy: str = Field(
        default="refund",
        description="What to do with a confirmed payment for a full event (refund|admit)",
    )
    nickname_change_interval_days: int = Field(
        default=30,
        description="Minimum number of days between two nickname changes",
        ge=0,
    )
    max_event_total_cost: Decimal = Field(
        default=Decimal("1500"),
        description="Upper bound of an event's total cost",
        gt=0,
    )
    max_event_players: int = Field(default=50, description="Upper bound of max players", ge=2)
    max_event_days_ahead: int = Field(
        default=90,
        description="How far in advance events may be scheduled",
        ge=1,
    )
    chat_message_max_length: int = Field(default=1000, ge=1)

    @field_validator("database_url", "supabase_db_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @field_validator("supabase_db_url")
    @classmethod
    def _require_postgres_scheme(cls, value: Any) -> Any:
        if value is None:
            return value
        url_str = str(value)
        scheme = url_str.split(":", 1)[0].lower()
        valid_schemes = {
            "postgres",
            "postgresql",
            "postgresql+psycopg",
            "postgresql+asyncpg",
        }
        if scheme not in valid_schemes:
            raise ValueError(
                "SUPABASE_DB_URL must be a PostgreSQL connection string (e.g. postgresql://...)."
            )
        return value

    @field_validator("payment_method_types", mode="after")
    @classmethod
    def _parse_payment_method_types(cls, value: Any) -> list[str]:
        if value in (None, "", []):
            return ["card"]
        if isinstance(value, str):
            candidate = value.strip()
            if not candidate:
                return ["card"]
            return [
                item for item in (part.strip() for part in candidate.split(",")) if item
            ]
        if isinstance(value, (list, tuple, set)):
            return [str(item).strip() for item in value if str(item).strip()]
        raise ValueError(
            "PAYMENT_METHOD_TYPES must be provided as a list or comma-separated string"
        )

    @field_validator("overflow_policy")
    @classmethod
    def _validate_overflow_policy(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {"refund", "admit"}:
            raise ValueError("OVERFLOW_POLICY must be either 'refund' or 'admit'")
        return normalized

    @field_validator("currency", "connect_country")
    @classmethod
    def _strip_code(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("currency and country codes cannot be blank")
        return value.strip()

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.supabase_db_url:
                raise ValueError(
                    "SUPABASE_DB_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.supabase_db_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def public_base_url(self) -> str:
        return self.base_url.rstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
