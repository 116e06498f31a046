"""CA toolkit adapters: the protocol the authority relies on and its openssl implementation."""

import asyncio
import re
import shutil
from pathlib import Path
from typing import Protocol

from .config import DistinguishedName
from .errors import ToolkitError, ToolkitUnavailable
from .logging_config import LOGGER

_VERIFY_OK = re.compile(r"[^:]+: OK")


class CAToolkit(Protocol):
    """Operations the exchange needs from a certificate toolkit."""

    async def is_installed(self) -> bool: ...

    async def generate_rsa_key(self, bits: int, out: Path) -> None: ...

    async def generate_self_signed_cert(
        self, subject: DistinguishedName, key: Path, out: Path, days: int
    ) -> None: ...

    async def generate_csr(self, subject: DistinguishedName, key: Path, out: Path) -> None: ...

    async def sign_csr(
        self,
        csr: Path,
        ca_cert: Path,
        ca_key: Path,
        serial: Path,
        days: int,
        out: Path | None = None,
    ) -> bytes: ...

    async def check_expiring_within(self, seconds: int, cert: Path) -> bool: ...

    async def read_end_date(self, cert: Path) -> str: ...

    async def verify_chain(self, ca_file: Path, cert: Path) -> bool: ...

    async def dump_subject(self, csr: Path) -> str: ...


class OpenSSLToolkit:
    """CAToolkit backed by the ``openssl`` command line tool."""

    def __init__(self, binary: str = "openssl") -> None:
        self.binary = binary

    async def _run(self, *args: str) -> tuple[int, bytes, bytes]:
        LOGGER.debug("Running %s %s", self.binary, " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                self.binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as e:
            raise ToolkitUnavailable(f"{self.binary} is not installed") from e
        stdout, stderr = await process.communicate()
        return process.returncode or 0, stdout, stderr

    async def _check(self, *args: str) -> bytes:
        returncode, stdout, stderr = await self._run(*args)
        if returncode != 0:
            raise ToolkitError(
                f"{self.binary} {' '.join(args)} failed ({returncode}): "
                f"{stderr.decode(errors='replace').strip()}"
            )
        return stdout

    def binary_path(self) -> str | None:
        """Resolved location of the openssl binary, None if it is not on PATH."""
        return shutil.which(self.binary)

    async def is_installed(self) -> bool:
        return self.binary_path() is not None

    async def generate_rsa_key(self, bits: int, out: Path) -> None:
        await self._check("genrsa", "-out", str(out), str(bits))

    async def generate_self_signed_cert(
        self, subject: DistinguishedName, key: Path, out: Path, days: int
    ) -> None:
        await self._check(
            "req",
            "-new",
            "-x509",
            "-subj",
            subject.to_openssl_subject(),
            "-key",
            str(key),
            "-out",
            str(out),
            "-days",
            str(days),
        )

    async def generate_csr(self, subject: DistinguishedName, key: Path, out: Path) -> None:
        await self._check(
            "req",
            "-new",
            "-key",
            str(key),
            "-out",
            str(out),
            "-subj",
            subject.to_openssl_subject(),
        )

    async def sign_csr(
        self,
        csr: Path,
        ca_cert: Path,
        ca_key: Path,
        serial: Path,
        days: int,
        out: Path | None = None,
    ) -> bytes:
        args = [
            "x509",
            "-req",
            "-in",
            str(csr),
            "-CA",
            str(ca_cert),
            "-CAkey",
            str(ca_key),
            "-CAcreateserial",
            "-CAserial",
            str(serial),
            "-days",
            str(days),
        ]
        if out is not None:
            args += ["-out", str(out)]
        stdout = await self._check(*args)
        return out.read_bytes() if out is not None else stdout

    async def check_expiring_within(self, seconds: int, cert: Path) -> bool:
        # -checkend exits 1 when the certificate expires inside the window
        returncode, _, _ = await self._run("x509", "-checkend", str(seconds), "-in", str(cert))
        return returncode == 0

    async def read_end_date(self, cert: Path) -> str:
        output = await self._check("x509", "-enddate", "-in", str(cert), "-noout")
        return output.decode()

    async def verify_chain(self, ca_file: Path, cert: Path) -> bool:
        returncode, stdout, _ = await self._run("verify", "-CAfile", str(ca_file), str(cert))
        return returncode == 0 and bool(_VERIFY_OK.search(stdout.decode(errors="replace")))

    async def dump_subject(self, csr: Path) -> str:
        output = await self._check("req", "-in", str(csr), "-noout", "-subject")
        return output.decode()
