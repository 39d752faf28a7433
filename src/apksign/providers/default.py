"""The built-in provider backed by the ``cryptography`` package."""
from __future__ import annotations

from apksign.certificates.pkcs8 import dsa_key_factory, ec_key_factory, rsa_key_factory
from apksign.keystore.pem import PemKeyStore
from apksign.keystore.pkcs12 import PKCS12KeyStore
from apksign.providers.registry import Provider

DEFAULT_PROVIDER_NAME = "Default"


class DefaultProvider(Provider):
    """Offers the PKCS12 and PEMKS keystores and RSA, EC and DSA key factories."""

    def __init__(self, name: str = DEFAULT_PROVIDER_NAME) -> None:
        super().__init__(name)
        self.register_keystore(PKCS12KeyStore.type_name, PKCS12KeyStore)
        self.register_keystore(PemKeyStore.type_name, PemKeyStore)
        self.register_key_factory("RSA", rsa_key_factory())
        self.register_key_factory("EC", ec_key_factory())
        self.register_key_factory("DSA", dsa_key_factory())
