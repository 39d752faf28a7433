"""Signer parameters gathered from the command line."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509

from apksign.capabilities import SignerCapabilitiesBuilder
from apksign.certificates.pkcs8 import PrivateKey

KEYSTORE_FILE_NONE = "NONE"


@dataclass
class SignerParams:
    """Where to find one signer's private key and certificates.

    Either the keystore fields (``keystore_*``) or the file fields
    (``key_file`` and ``cert_file``) are set, never both. Fields are filled
    in one at a time while options are parsed. :func:`load_private_key_and_certs`
    then fills :attr:`private_key` and :attr:`certificates`.

    Parameters
    ----------
    name:
        Display name, e.g. ``"signer #1"``. Replaced by the key alias or key
        file stem once loading succeeds.
    keystore_file:
        Keystore path, or ``"NONE"`` for a keystore with no backing file.
    password_charset:
        Extra encoding to try for every password, after the native one.
    v1_signer_name:
        Basename for the JAR signature files of this signer.
    """

    name: str | None = None

    keystore_file: str | None = None
    keystore_key_alias: str | None = None
    keystore_password_spec: str | None = None
    key_password_spec: str | None = None
    password_charset: str | None = None
    keystore_type: str | None = None
    keystore_provider_name: str | None = None
    keystore_provider_class: str | None = None
    keystore_provider_arg: str | None = None

    key_file: str | None = None
    cert_file: str | None = None

    v1_signer_name: str | None = None

    private_key: PrivateKey | None = field(default=None, repr=False)
    certificates: list[x509.Certificate] | None = field(default=None, repr=False)
    capabilities: SignerCapabilitiesBuilder = field(
        default_factory=SignerCapabilitiesBuilder, repr=False
    )

    def is_empty(self) -> bool:
        """Return True if no source, password or naming field has been set."""
        return all(
            value is None
            for value in (
                self.name,
                self.keystore_file,
                self.keystore_key_alias,
                self.keystore_password_spec,
                self.key_password_spec,
                self.password_charset,
                self.keystore_type,
                self.keystore_provider_name,
                self.keystore_provider_class,
                self.keystore_provider_arg,
                self.key_file,
                self.cert_file,
                self.v1_signer_name,
                self.private_key,
                self.certificates,
            )
        )

    @property
    def extra_encodings(self) -> tuple[str, ...]:
        return (self.password_charset,) if self.password_charset else ()

    @property
    def is_keystore_backed(self) -> bool:
        return self.keystore_file is not None

    def key_name(self) -> str | None:
        """Return the key alias, else the key file name up to its first ``.``."""
        if self.keystore_key_alias is not None:
            return self.keystore_key_alias
        if self.key_file is not None:
            return Path(self.key_file).name.split(".", 1)[0]
        return None

    def v1_basename(self) -> str:
        """Return the JAR signature file basename for this signer."""
        if self.v1_signer_name is not None:
            return self.v1_signer_name
        name = self.key_name()
        if name is None:
            raise ValueError("Neither keystore key alias nor private key file available")
        return name
