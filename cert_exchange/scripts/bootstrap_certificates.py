#!/usr/bin/env python3
"""Ensure the local CA and server certificate exist and are valid."""

import argparse
import asyncio
import sys
from pathlib import Path

from cert_exchange.lib.authority import AuthorityManager
from cert_exchange.lib.config import ProvisioningPaths, default_provisioning_dir
from cert_exchange.lib.crypto_toolkit import CryptographyToolkit
from cert_exchange.lib.logging_config import LOGGER
from cert_exchange.lib.toolkit import CAToolkit, OpenSSLToolkit


def select_toolkit(name: str) -> CAToolkit:
    """Return the toolkit named on the command line."""
    if name == "openssl":
        return OpenSSLToolkit()
    return CryptographyToolkit()


async def bootstrap(paths: ProvisioningPaths, toolkit: CAToolkit) -> str:
    """Ensure CA and server certificate, returning the server cert end date line."""
    manager = AuthorityManager(paths, toolkit)
    await manager.ensure_server_certificate_exists()
    return (await toolkit.read_end_date(paths.server_cert)).strip()


def main() -> int:
    """Bootstrap the provisioning directory.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(
        description="Generate or refresh the CA and server certificate"
    )
    parser.add_argument(
        "--provisioning-dir",
        type=Path,
        default=default_provisioning_dir(),
        help="Directory holding CA and server artifacts (default: ~/.flipper/certs)",
    )
    parser.add_argument(
        "--toolkit",
        choices=["openssl", "cryptography"],
        default="openssl",
        help="Toolkit used to generate keys and certificates (default: openssl)",
    )
    args = parser.parse_args()

    try:
        paths = ProvisioningPaths(directory=args.provisioning_dir)
        LOGGER.info("Ensuring certificates in %s...", paths.directory)
        end_date = asyncio.run(bootstrap(paths, select_toolkit(args.toolkit)))

        LOGGER.info("CA:")
        LOGGER.info("  Key: %s", paths.ca_key)
        LOGGER.info("  Cert: %s", paths.ca_cert)
        LOGGER.info("Server:")
        LOGGER.info("  Key: %s", paths.server_key)
        LOGGER.info("  Cert: %s", paths.server_cert)
        LOGGER.info("  %s", end_date)
        return 0

    except Exception as e:
        LOGGER.error("Bootstrap failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
