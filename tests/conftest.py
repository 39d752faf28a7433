"""Shared fixtures: signing keys, self-signed certificates and key files."""
from __future__ import annotations

import datetime
from pathlib import Path
from typing import Callable, NamedTuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa
from cryptography.x509.oid import NameOID


class Credentials(NamedTuple):
    key: object
    cert: x509.Certificate


def self_signed(key, common_name: str) -> x509.Certificate:
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.datetime.now(datetime.timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=365))
        .sign(key, hashes.SHA256())
    )


# ---------------------------------------------------------------------------
# Key material (generated once per session)
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_credentials() -> Credentials:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return Credentials(key, self_signed(key, "RSA Signer"))


@pytest.fixture(scope="session")
def ec_credentials() -> Credentials:
    key = ec.generate_private_key(ec.SECP256R1())
    return Credentials(key, self_signed(key, "EC Signer"))


@pytest.fixture(scope="session")
def ec_credentials_2() -> Credentials:
    key = ec.generate_private_key(ec.SECP256R1())
    return Credentials(key, self_signed(key, "Second EC Signer"))


@pytest.fixture(scope="session")
def ec_credentials_3() -> Credentials:
    key = ec.generate_private_key(ec.SECP384R1())
    return Credentials(key, self_signed(key, "Third EC Signer"))


@pytest.fixture(scope="session")
def dsa_credentials() -> Credentials:
    key = dsa.generate_private_key(key_size=2048)
    return Credentials(key, self_signed(key, "DSA Signer"))


# ---------------------------------------------------------------------------
# Files on disk
# ---------------------------------------------------------------------------


@pytest.fixture()
def write_key_files(tmp_path: Path) -> Callable[..., tuple[Path, Path]]:
    """Return a helper writing a PKCS #8 key file and a PEM certificate file.

    ``password`` encrypts the key. ``der`` writes the key in DER rather
    than PEM.
    """

    def _write(
        credentials: Credentials,
        stem: str = "signer",
        password: bytes | None = None,
        der: bool = False,
    ) -> tuple[Path, Path]:
        encryption: serialization.KeySerializationEncryption
        if password is not None:
            encryption = serialization.BestAvailableEncryption(password)
        else:
            encryption = serialization.NoEncryption()
        encoding = serialization.Encoding.DER if der else serialization.Encoding.PEM
        key_path = tmp_path / f"{stem}.pk8"
        key_path.write_bytes(
            credentials.key.private_bytes(
                encoding=encoding,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=encryption,
            )
        )
        cert_path = tmp_path / f"{stem}.x509.pem"
        cert_path.write_bytes(credentials.cert.public_bytes(serialization.Encoding.PEM))
        return key_path, cert_path

    return _write
