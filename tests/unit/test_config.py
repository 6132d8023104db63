"""
Unit tests for configuration — pydantic-settings loading and validation.

Environment variables are set with monkeypatch; the .env file is disabled.
"""

from __future__ import annotations

import json

import pytest
from pydantic import ValidationError

from cert_identity.config import (
    AppSettings,
    LdapSettings,
    StateStoreSettings,
    X509Settings,
)
from cert_identity.domain.models import AttributeMapping, CertificateMatch

BACKENDS = {
    "corp": {
        "urls": ["ldaps://ldap.example.org"],
        "search_bases": ["ou=people,dc=example,dc=org"],
    }
}


@pytest.fixture()
def env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    monkeypatch.setenv("LDAP_BACKENDS", json.dumps(BACKENDS))
    monkeypatch.setenv("X509__BACKEND", "corp")
    return monkeypatch


class TestAppSettings:
    def test_loads_from_environment(self, env: pytest.MonkeyPatch) -> None:
        """
        GIVEN LDAP_BACKENDS and X509__BACKEND in the environment
        WHEN AppSettings is created
        THEN the named backend is selected and defaults apply elsewhere.
        """
        settings = AppSettings(_env_file=None)

        assert settings.directory().urls == ["ldaps://ldap.example.org"]
        assert settings.x509.stored_certificate_attributes == ["userCertificate;binary"]
        assert settings.x509.certificate_match is CertificateMatch.PARSED
        assert settings.expiry.enabled is True
        assert settings.expiry.warn_days_before == 30
        assert not settings.state.uses_database

    def test_nested_override(self, env: pytest.MonkeyPatch) -> None:
        env.setenv("EXPIRY__WARN_DAYS_BEFORE", "14")
        env.setenv("EXPIRY__RENEW_URL", "https://example.org/renew")

        settings = AppSettings(_env_file=None)

        assert settings.expiry.warn_days_before == 14
        assert settings.expiry.renew_url == "https://example.org/renew"

    def test_unknown_backend_rejected(self, env: pytest.MonkeyPatch) -> None:
        env.setenv("X509__BACKEND", "missing")

        with pytest.raises(ValidationError, match="missing"):
            AppSettings(_env_file=None)

    def test_backends_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("LDAP_BACKENDS", raising=False)

        with pytest.raises(ValidationError):
            AppSettings(_env_file=None)

    def test_negative_threshold_rejected(self, env: pytest.MonkeyPatch) -> None:
        env.setenv("EXPIRY__WARN_DAYS_BEFORE", "-1")

        with pytest.raises(ValidationError):
            AppSettings(_env_file=None)


class TestLdapSettings:
    def test_blank_bind_dn_rejected(self) -> None:
        with pytest.raises(ValidationError, match="bind_dn"):
            LdapSettings(urls=["ldap://x"], search_bases=["dc=x"], bind_dn="  ")

    def test_requires_at_least_one_url(self) -> None:
        with pytest.raises(ValidationError):
            LdapSettings(urls=[], search_bases=["dc=x"])

    def test_password_is_secret(self) -> None:
        settings = LdapSettings(urls=["ldap://x"], search_bases=["dc=x"], bind_password="pw")

        assert "pw" not in repr(settings)
        assert settings.bind_password.get_secret_value() == "pw"


class TestX509Settings:
    def test_mappings_preserve_order(self) -> None:
        settings = X509Settings(attribute_mapping=[("UID", "uid"), ("CN", "cn")])

        assert settings.mappings() == [AttributeMapping("UID", "uid"), AttributeMapping("CN", "cn")]

    def test_cross_check_can_be_disabled(self) -> None:
        assert X509Settings(stored_certificate_attributes=None).stored_certificate_attributes is None

    def test_fingerprint_match(self) -> None:
        assert X509Settings(certificate_match="fingerprint").certificate_match is CertificateMatch.FINGERPRINT


class TestStateStoreSettings:
    def test_dsn_built_from_components(self) -> None:
        settings = StateStoreSettings(host="db", name="idp", username="idp", password="pw")

        assert settings.uses_database
        assert settings.get_dsn() == "postgresql://idp:pw@db:5432/idp"

    def test_explicit_dsn_wins(self) -> None:
        settings = StateStoreSettings(dsn="postgresql://a:b@c/d", host="db")

        assert settings.get_dsn() == "postgresql://a:b@c/d"

    def test_incomplete_components_rejected(self) -> None:
        with pytest.raises(ValidationError, match="STATE__PASSWORD"):
            StateStoreSettings(host="db", name="idp", username="idp")

    def test_invalid_cron_rejected(self) -> None:
        with pytest.raises(ValidationError, match="5 fields"):
            StateStoreSettings(purge_cron="*/15 * * *")
