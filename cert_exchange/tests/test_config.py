"""Tests for configuration dataclasses."""

from pathlib import Path

import pytest

from cert_exchange.lib.config import (
    AuthorityConfig,
    DistinguishedName,
    ExchangeConfig,
    ProvisioningPaths,
    default_provisioning_dir,
)


class TestDistinguishedName:
    """Tests for DistinguishedName."""

    def test_default_ca_subject(self) -> None:
        subject = AuthorityConfig().ca_subject

        assert subject.to_openssl_subject() == "/C=US/ST=CA/L=Menlo Park/O=Sonar/CN=SonarCA"
        assert subject.to_x509_name().rfc4514_string() == (
            "CN=SonarCA,O=Sonar,L=Menlo Park,ST=CA,C=US"
        )

    def test_organizational_unit(self) -> None:
        dn = DistinguishedName(
            country="GB",
            state="London",
            locality="London",
            organization="Test Org",
            common_name="localhost",
            organizational_unit="Devices",
        )

        assert dn.to_openssl_subject() == (
            "/C=GB/ST=London/L=London/O=Test Org/OU=Devices/CN=localhost"
        )


class TestProvisioningPaths:
    """Tests for ProvisioningPaths."""

    def test_layout(self, tmp_path: Path) -> None:
        paths = ProvisioningPaths(directory=tmp_path)

        assert [
            p.name
            for p in (
                paths.ca_key,
                paths.ca_cert,
                paths.server_key,
                paths.server_csr,
                paths.server_serial,
                paths.server_cert,
            )
        ] == ["ca.key", "ca.crt", "server.key", "server.csr", "server.srl", "server.crt"]
        assert paths.ca_key.parent == tmp_path

    def test_default_directory(self) -> None:
        assert ProvisioningPaths().directory == default_provisioning_dir()
        assert default_provisioning_dir().parts[-2:] == (".flipper", "certs")


class TestExchangeConfig:
    """Tests for ExchangeConfig.from_env()."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for name in (
            "CERT_EXCHANGE_IDB_PATH",
            "CERT_EXCHANGE_ENABLE_ANDROID",
            "CERT_EXCHANGE_ENABLE_IOS",
            "ANDROID_HOME",
            "CERT_EXCHANGE_ENABLE_PHYSICAL_IOS",
            "CERT_EXCHANGE_UPLOAD_BUCKET",
            "AWS_REGION",
            "CERT_EXCHANGE_UPLOAD_TIMEOUT",
            "CERT_EXCHANGE_REJECT_AMBIGUOUS",
        ):
            monkeypatch.delenv(name, raising=False)

        assert ExchangeConfig.from_env() == ExchangeConfig()

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CERT_EXCHANGE_IDB_PATH", "/opt/homebrew/bin/idb")
        monkeypatch.setenv("CERT_EXCHANGE_ENABLE_ANDROID", "false")
        monkeypatch.setenv("CERT_EXCHANGE_ENABLE_PHYSICAL_IOS", "YES")
        monkeypatch.setenv("CERT_EXCHANGE_UPLOAD_BUCKET", "cert-intake")
        monkeypatch.setenv("AWS_REGION", "us-east-1")
        monkeypatch.setenv("CERT_EXCHANGE_UPLOAD_TIMEOUT", "12.5")
        monkeypatch.setenv("CERT_EXCHANGE_REJECT_AMBIGUOUS", "1")

        config = ExchangeConfig.from_env()

        assert config.idb_path == "/opt/homebrew/bin/idb"
        assert config.enable_android is False
        assert config.enable_ios is True
        assert config.enable_physical_ios is True
        assert config.upload_bucket == "cert-intake"
        assert config.region == "us-east-1"
        assert config.upload_timeout_seconds == 12.5
        assert config.reject_ambiguous_matches is True
