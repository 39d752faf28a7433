"""PKCS #12 keystore backed by the ``cryptography`` PKCS #12 loader.

The store password checks the MAC when the store is loaded. Key recovery
decodes the bag again with the candidate key password, so a wrong key
password shows up as :class:`UnrecoverableKeyError` at :meth:`get_key`
time, the same as for a keystore with separate key passwords.
"""
from __future__ import annotations

import logging

from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs12

from apksign.certificates.pkcs8 import PrivateKey
from apksign.errors import KeyStoreIntegrityError, UnrecoverableKeyError
from apksign.keystore.base import KeyStore

logger = logging.getLogger(__name__)

DEFAULT_KEY_ALIAS = "1"


class PKCS12KeyStore(KeyStore):
    """A PKCS #12 (``.p12`` / ``.pfx``) keystore with at most one key entry."""

    type_name = "PKCS12"

    def __init__(self) -> None:
        self._data: bytes | None = None
        self._key_alias: str | None = None
        self._chains: dict[str, list[x509.Certificate]] = {}
        self._certificates: dict[str, x509.Certificate] = {}

    # ------------------------------------------------------------------
    # KeyStore interface
    # ------------------------------------------------------------------

    def load(self, data: bytes | None, password: bytes | None) -> None:
        self._data = data
        self._key_alias = None
        self._chains = {}
        self._certificates = {}
        if data is None:
            return

        bundle = self._parse(data, password, KeyStoreIntegrityError)
        extra = [c.certificate for c in bundle.additional_certs]
        if bundle.key is not None and bundle.cert is not None:
            alias = _friendly_name(bundle.cert) or DEFAULT_KEY_ALIAS
            chain = _build_chain(bundle.cert.certificate, extra)
            self._key_alias = alias
            self._chains[alias] = chain
            extra = [c for c in extra if c not in chain]

        for index, cert in enumerate(bundle.additional_certs, start=1):
            if cert.certificate not in extra:
                continue
            alias = _friendly_name(cert) or f"cert-{index}"
            self._certificates[alias] = cert.certificate
        logger.debug("Loaded PKCS12 keystore with %d entries", len(self.aliases()))

    def aliases(self) -> list[str]:
        names = [self._key_alias] if self._key_alias is not None else []
        names.extend(self._certificates)
        return names

    def is_key_entry(self, alias: str) -> bool:
        return alias == self._key_alias

    def get_key(self, alias: str, password: bytes | None) -> PrivateKey | None:
        if not self.is_key_entry(alias) or self._data is None:
            return None
        bundle = self._parse(self._data, password, UnrecoverableKeyError)
        return bundle.key  # type: ignore[return-value]

    def get_certificate_chain(self, alias: str) -> list[x509.Certificate] | None:
        chain = self._chains.get(alias)
        return list(chain) if chain is not None else None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @staticmethod
    def _parse(
        data: bytes,
        password: bytes | None,
        error: type[Exception],
    ) -> pkcs12.PKCS12KeyAndCertificates:
        try:
            return pkcs12.load_pkcs12(data, password or None)
        except (ValueError, TypeError) as exc:
            raise error(
                "Keystore was tampered with, or password was incorrect"
            ) from exc


def _friendly_name(cert: pkcs12.PKCS12Certificate) -> str | None:
    if cert.friendly_name is None:
        return None
    return cert.friendly_name.decode("utf-8")


def _build_chain(
    leaf: x509.Certificate, candidates: list[x509.Certificate]
) -> list[x509.Certificate]:
    """Order the issuers of *leaf* found in *candidates* after it."""
    chain = [leaf]
    remaining = list(candidates)
    current = leaf
    while current.issuer != current.subject:
        issuer = next((c for c in remaining if c.subject == current.issuer), None)
        if issuer is None:
            break
        chain.append(issuer)
        remaining.remove(issuer)
        current = issuer
    return chain
