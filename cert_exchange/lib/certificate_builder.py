"""Certificate builder for X.509 certificate construction."""

from datetime import datetime, timedelta, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from .cert_utils import (
    extract_csr_public_key,
    extract_csr_subject,
    generate_serial_number,
    validate_csr_signature,
)
from .config import DistinguishedName

_END_ENTITY_KEY_USAGE = x509.KeyUsage(
    digital_signature=True,
    content_commitment=False,
    key_encipherment=True,
    data_encipherment=False,
    key_agreement=False,
    key_cert_sign=False,
    crl_sign=False,
    encipher_only=False,
    decipher_only=False,
)


class CertificateBuilder:
    """Builds the local CA certificate and the certificates it issues."""

    @staticmethod
    def build_root_ca(
        subject_dn: DistinguishedName,
        private_key: RSAPrivateKey,
        validity_days: int,
    ) -> x509.Certificate:
        """Build self-signed CA certificate.

        Args:
            subject_dn: Distinguished name for certificate subject
            private_key: RSA private key for signing
            validity_days: Certificate validity period in days

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        subject = subject_dn.to_x509_name()
        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(private_key.public_key())
            .serial_number(generate_serial_number())
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=True, path_length=None),
                critical=True,
            )
            .add_extension(
                x509.KeyUsage(
                    digital_signature=False,
                    content_commitment=False,
                    key_encipherment=False,
                    data_encipherment=False,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=True,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=True,
            )
        )

        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_csr(
        subject_dn: DistinguishedName, private_key: RSAPrivateKey
    ) -> x509.CertificateSigningRequest:
        """Build a CSR for ``subject_dn`` signed with ``private_key``."""
        return (
            x509.CertificateSigningRequestBuilder()
            .subject_name(subject_dn.to_x509_name())
            .sign(private_key, hashes.SHA256())
        )

    @staticmethod
    def build_signed_certificate(
        csr: x509.CertificateSigningRequest,
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity_days: int,
        serial_number: int,
    ) -> x509.Certificate:
        """Build an end-entity certificate from a CSR, signed by the CA.

        The server certificate and device client certificates are both issued
        here. A ``localhost`` CN also gets a matching DNS SAN so TLS hostname
        checks pass on the desktop side.

        Args:
            csr: Certificate signing request
            issuer_cert: CA certificate (issuer)
            issuer_key: CA private key for signing
            validity_days: Certificate validity period in days
            serial_number: Serial taken from the CA serial file

        Returns:
            X.509 end-entity certificate signed by the CA

        Raises:
            ValueError: If CSR signature is invalid
        """
        if not validate_csr_signature(csr):
            raise ValueError("CSR signature validation failed")

        subject = extract_csr_subject(csr)
        public_key = extract_csr_public_key(csr)

        not_before = datetime.now(timezone.utc)
        not_after = not_before + timedelta(days=validity_days)

        builder = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(issuer_cert.subject)
            .public_key(public_key)
            .serial_number(serial_number)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(
                x509.BasicConstraints(ca=False, path_length=None),
                critical=True,
            )
            .add_extension(_END_ENTITY_KEY_USAGE, critical=False)
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
                ),
                critical=False,
            )
        )

        common_names = subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        if common_names and common_names[0].value == "localhost":
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName("localhost")]),
                critical=False,
            )

        return builder.sign(issuer_key, hashes.SHA256())
