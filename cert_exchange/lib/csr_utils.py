"""CSR text handling: sanitization and app name extraction from subjects."""

import re

from .errors import DisallowedAppName, MalformedSubject

ALLOWED_APP_NAME = re.compile(r"[\w.-]+", re.ASCII)

_SUBJECT_PREFIX = re.compile(r"subject\s*=\s*", re.IGNORECASE)

# One "TYPE = value" pair of a comma separated subject ("C = US, CN = x" or
# RFC2253 "CN=x,C=US"). Quoted values and backslash escapes are captured
# verbatim, so a comma inside a value never starts a new RDN.
_RDN = re.compile(r'\s*([\w.]+)\s*=\s*("(?:[^"\\]|\\.)*"|(?:[^,\\]|\\.)*)\s*(?:,|$)')

# Legacy "/C=US/CN=x" output cannot tell a "/" inside a value from a
# separator, so the CN value runs to the end of the subject.
_LEGACY_CN = re.compile(r"/CN=(.*)$")


def sanitize_csr(csr: str) -> str:
    """Strip carriage returns and surrounding whitespace."""
    return csr.replace("\r", "").strip()


def _split_rdns(subject: str) -> list[tuple[str, str]]:
    rdns = []
    position = 0
    while position < len(subject):
        match = _RDN.match(subject, position)
        if match is None:
            raise MalformedSubject(f"Cannot extract CN from {subject}")
        rdns.append((match.group(1), match.group(2).rstrip()))
        position = match.end()
    return rdns


def parse_common_name(subject: str) -> str:
    """Extract the CN from a toolkit subject dump.

    The value is returned exactly as printed, escapes and quotes included, so
    validate_app_name rejects anything that needed escaping.

    Raises:
        MalformedSubject: If there is not exactly one CN
    """
    body = subject.strip()
    prefix = _SUBJECT_PREFIX.match(body)
    if prefix is not None:
        body = body[prefix.end() :]
    if body.startswith("/"):
        legacy = _LEGACY_CN.search(body)
        if legacy is None:
            raise MalformedSubject(f"Cannot extract CN from {subject.strip()}")
        return legacy.group(1)

    common_names = [
        value for name, value in _split_rdns(body) if name in ("CN", "commonName")
    ]
    if len(common_names) != 1:
        raise MalformedSubject(f"Cannot extract CN from {subject.strip()}")
    return common_names[0]


def validate_app_name(app_name: str) -> str:
    """Return ``app_name`` if it is safe to use as a path component or process argument.

    Raises:
        DisallowedAppName: If it contains anything but word characters, '.' or '-'
    """
    if not ALLOWED_APP_NAME.fullmatch(app_name):
        raise DisallowedAppName(
            f"Disallowed app name in CSR: {app_name}. "
            "Only alphanumeric characters, '_', '-' and '.' allowed."
        )
    return app_name
