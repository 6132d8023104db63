"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup

Architecture: Only AppSettings is a BaseSettings instance. Sub-settings are plain
BaseModel classes populated by AppSettings via env_nested_delimiter="__", so
X509__BACKEND maps to x509.backend, EXPIRY__WARN_DAYS_BEFORE to
expiry.warn_days_before, and so on. Structured values (lists, the backend map)
are given as JSON, e.g.

  LDAP_BACKENDS='{"corp": {"urls": ["ldaps://ldap.example.org"], "search_bases": ["ou=people,dc=example,dc=org"]}}'
  X509__ATTRIBUTE_MAPPING='[["UID", "uid"], ["CN", "cn"]]'
  X509__STORED_CERTIFICATE_ATTRIBUTES=null        # disable the certificate cross-check
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cert_identity.domain.models import AttributeMapping, CertificateMatch

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class LdapSettings(BaseModel):
    """
    One named directory backend.

    Several backends may be configured; the certificate resolver names the one
    it searches via X509__BACKEND.
    """

    urls: list[str] = Field(min_length=1, description="LDAP server URLs, tried in order")
    search_bases: list[str] = Field(min_length=1, description="Search bases, tried in order")
    bind_dn: str | None = Field(default=None, description="Bind DN (anonymous when unset)")
    bind_password: SecretStr | None = Field(default=None, description="Bind password")
    start_tls: bool = Field(default=False, description="Issue StartTLS before binding")
    timeout_seconds: int = Field(default=10, ge=1)
    attributes: list[str] | None = Field(
        default=None,
        description="Allow-list of entry attributes returned on success (None = all)",
    )

    @field_validator("bind_dn")
    @classmethod
    def reject_blank_bind_dn(cls, value: str | None) -> str | None:
        if value is not None and not value.strip():
            raise ValueError("bind_dn must not be blank; omit it for an anonymous bind")
        return value


class X509Settings(BaseModel):
    """Certificate → directory entry resolution."""

    backend: str = Field(default="default", description="Name of the LDAP backend to search")
    attribute_mapping: list[tuple[str, str]] = Field(
        default_factory=lambda: [("UID", "uid")],
        description="Ordered (certificate subject attribute, directory attribute) pairs",
    )
    stored_certificate_attributes: list[str] | None = Field(
        default_factory=lambda: ["userCertificate;binary"],
        description="Directory attributes holding certificates; null disables the cross-check",
    )
    certificate_match: CertificateMatch = Field(default=CertificateMatch.PARSED)
    client_cert_header: str = Field(
        default="X-SSL-Client-Cert",
        description="Request header carrying the URL-escaped PEM client certificate",
    )

    def mappings(self) -> list[AttributeMapping]:
        return [AttributeMapping(cert_attr, dir_attr) for cert_attr, dir_attr in self.attribute_mapping]


class ExpirySettings(BaseModel):
    """Expiry warning interrupt."""

    enabled: bool = Field(default=True)
    warn_days_before: int = Field(default=30, ge=0)
    renew_url: str | None = Field(default=None, description="Link offered on the warning page")


class StateStoreSettings(BaseModel):
    """
    Pending-state storage.

    With no DSN and no host the in-memory store is used (single process only).
    Otherwise state goes to PostgreSQL: either STATE__DSN or the individual
    components; STATE__DSN takes priority.
    """

    dsn: SecretStr | None = Field(default=None, description="Full PostgreSQL connection string")
    host: str | None = Field(default=None)
    port: int = Field(default=5432, ge=1, le=65535)
    name: str | None = Field(default=None)
    username: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)

    ttl_minutes: int = Field(default=60, ge=1, description="Lifetime of a suspended login")
    purge_cron: str = Field(
        default="*/15 * * * *",
        description="Cron expression (5 fields) for deleting expired state",
    )
    create_schema: bool = Field(default=True, description="Create the auth_state table on startup")

    @field_validator("purge_cron")
    @classmethod
    def validate_cron(cls, value: str) -> str:
        """Reject expressions that don't have exactly 5 space-separated fields."""
        fields = value.strip().split()
        if len(fields) != 5:
            raise ValueError(
                f"Cron expression must have exactly 5 fields "
                f"(minute hour dom month dow), got {len(fields)}: {value!r}"
            )
        return value.strip()

    @model_validator(mode="after")
    def resolve_dsn(self) -> StateStoreSettings:
        """
        Build `dsn` from components when only components are given.

        Raises ValueError at startup when a host is set but other required
        components are missing.
        """
        if self.dsn is not None or self.host is None:
            return self
        missing = [f for f, v in [
            ("STATE__NAME", self.name),
            ("STATE__USERNAME", self.username),
            ("STATE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set STATE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    @property
    def uses_database(self) -> bool:
        return self.dsn is not None

    def get_dsn(self) -> str:
        assert self.dsn is not None  # callers check uses_database first
        return self.dsn.get_secret_value()


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    ldap_backends: dict[str, LdapSettings]
    x509: X509Settings = Field(default_factory=lambda: X509Settings())
    expiry: ExpirySettings = Field(default_factory=lambda: ExpirySettings())
    state: StateStoreSettings = Field(default_factory=lambda: StateStoreSettings())

    log_level: str = Field(default="INFO")

    @model_validator(mode="after")
    def backend_exists(self) -> AppSettings:
        """The backend named by X509__BACKEND must be configured."""
        if self.x509.backend not in self.ldap_backends:
            raise ValueError(
                f"LDAP backend {self.x509.backend!r} not found in LDAP_BACKENDS "
                f"(configured: {', '.join(sorted(self.ldap_backends)) or 'none'})"
            )
        return self

    def directory(self) -> LdapSettings:
        return self.ldap_backends[self.x509.backend]
