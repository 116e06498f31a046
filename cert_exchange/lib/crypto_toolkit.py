"""In-process CA toolkit built on the ``cryptography`` library."""

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography.exceptions import InvalidSignature

from .cert_utils import (
    deserialize_certificate,
    deserialize_csr,
    deserialize_private_key,
    format_openssl_date,
    format_subject_oneline,
    generate_private_key,
    next_serial_number,
    serialize_certificate,
    serialize_csr,
    serialize_private_key,
)
from .certificate_builder import CertificateBuilder
from .config import DistinguishedName
from .errors import ToolkitError


class CryptographyToolkit:
    """CAToolkit that produces openssl-compatible files without shelling out.

    Key generation and signing are CPU-bound and run in a worker thread so
    they remain suspension points for the event loop.
    """

    async def is_installed(self) -> bool:
        return True

    async def generate_rsa_key(self, bits: int, out: Path) -> None:
        def _generate() -> None:
            out.write_bytes(serialize_private_key(generate_private_key(bits)))

        await asyncio.to_thread(_generate)

    async def generate_self_signed_cert(
        self, subject: DistinguishedName, key: Path, out: Path, days: int
    ) -> None:
        def _generate() -> None:
            private_key = deserialize_private_key(key.read_bytes())
            cert = CertificateBuilder.build_root_ca(
                subject_dn=subject,
                private_key=private_key,
                validity_days=days,
            )
            out.write_bytes(serialize_certificate(cert))

        await asyncio.to_thread(_generate)

    async def generate_csr(self, subject: DistinguishedName, key: Path, out: Path) -> None:
        def _generate() -> None:
            private_key = deserialize_private_key(key.read_bytes())
            out.write_bytes(serialize_csr(CertificateBuilder.build_csr(subject, private_key)))

        await asyncio.to_thread(_generate)

    async def sign_csr(
        self,
        csr: Path,
        ca_cert: Path,
        ca_key: Path,
        serial: Path,
        days: int,
        out: Path | None = None,
    ) -> bytes:
        def _sign() -> bytes:
            try:
                request = deserialize_csr(csr.read_bytes())
                cert = CertificateBuilder.build_signed_certificate(
                    csr=request,
                    issuer_cert=deserialize_certificate(ca_cert.read_bytes()),
                    issuer_key=deserialize_private_key(ca_key.read_bytes()),
                    validity_days=days,
                    serial_number=next_serial_number(serial),
                )
            except ValueError as e:
                raise ToolkitError(f"Unable to sign {csr}: {e}") from e
            pem = serialize_certificate(cert)
            if out is not None:
                out.write_bytes(pem)
            return pem

        return await asyncio.to_thread(_sign)

    async def check_expiring_within(self, seconds: int, cert: Path) -> bool:
        try:
            certificate = deserialize_certificate(cert.read_bytes())
        except (OSError, ValueError):
            return False
        return certificate.not_valid_after_utc > datetime.now(UTC) + timedelta(seconds=seconds)

    async def read_end_date(self, cert: Path) -> str:
        try:
            certificate = deserialize_certificate(cert.read_bytes())
        except (OSError, ValueError) as e:
            raise ToolkitError(f"Unable to load certificate {cert}: {e}") from e
        return f"notAfter={format_openssl_date(certificate.not_valid_after_utc)}\n"

    async def verify_chain(self, ca_file: Path, cert: Path) -> bool:
        try:
            ca = deserialize_certificate(ca_file.read_bytes())
            certificate = deserialize_certificate(cert.read_bytes())
            certificate.verify_directly_issued_by(ca)
        except (OSError, ValueError, TypeError, InvalidSignature):
            return False
        # openssl verify also fails when either certificate is outside its validity window
        now = datetime.now(UTC)
        return all(
            c.not_valid_before_utc <= now <= c.not_valid_after_utc for c in (ca, certificate)
        )

    async def dump_subject(self, csr: Path) -> str:
        try:
            request = deserialize_csr(csr.read_bytes())
        except (OSError, ValueError) as e:
            raise ToolkitError(f"Unable to load CSR {csr}: {e}") from e
        return f"subject={format_subject_oneline(request.subject)}\n"
