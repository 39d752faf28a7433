"""Resolve a signer's private key and certificate chain.

A signer comes either from a keystore (``--ks``) or from a PKCS #8 key
file plus a certificate file (``--key``/``--cert``). Both paths try every
candidate password in turn. The first one that works wins, and only the
last failure is reported when none does.

The keystore path reuses the keystore password for the key entry. If that
is rejected as a wrong key password, it prompts for the key password on
standard input and tries again.

Raw PKCS #8 keys are decoded by trying the RSA, EC and DSA key factories in
that order.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Sequence

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.dsa import DSAPrivateKey
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from apksign.certificates import EncryptedPrivateKeyInfo, PrivateKey, read_certificate_file, unarmor
from apksign.errors import (
    AliasNotFoundError,
    AmbiguousAliasError,
    ApkSignError,
    ConfigurationError,
    CredentialError,
    DecryptionError,
    InvalidKeySpecError,
    KeyParseError,
    KeyStoreError,
    NoCertificatesError,
    PasswordExhaustedError,
    UnrecoverableKeyError,
    UnsupportedKeyAlgorithmError,
)
from apksign.keystore import KeyStore
from apksign.passwords import SPEC_STDIN, CandidatePassword, PasswordRetriever
from apksign.providers import DEFAULT_KEYSTORE_TYPE, ProviderRegistry, default_registry, new_provider
from apksign.signer.params import KEYSTORE_FILE_NONE, SignerParams

logger = logging.getLogger(__name__)

KEY_ALGORITHM_ORDER: tuple[str, ...] = ("RSA", "EC", "DSA")

_PRIVATE_KEY_TYPES = (RSAPrivateKey, EllipticCurvePrivateKey, DSAPrivateKey)


def load_private_key_and_certs(
    params: SignerParams,
    retriever: PasswordRetriever,
    registry: ProviderRegistry | None = None,
) -> None:
    """Load the private key and certificates described by *params*.

    On success :attr:`SignerParams.private_key`,
    :attr:`SignerParams.certificates` and :attr:`SignerParams.name` are set.
    On failure *params* is left without a key or certificates.

    Raises
    ------
    CredentialError
        Wrapping whatever prevented the signer from loading.
    """
    registry = registry if registry is not None else default_registry()
    signer_name = params.name or "signer"
    try:
        if params.keystore_file is not None:
            if params.key_file is not None:
                raise ConfigurationError("--ks and --key may not be specified at the same time")
            if params.cert_file is not None:
                raise ConfigurationError("--ks and --cert may not be specified at the same time")
            alias, key, certs = _load_from_keystore(params, signer_name, retriever, registry)
            params.keystore_key_alias = alias
        elif params.key_file is not None:
            key, certs = _load_from_files(params, signer_name, retriever, registry)
        else:
            raise ConfigurationError(
                "KeyStore (--ks) or private key file (--key) must be specified"
            )
    except (ApkSignError, OSError) as exc:
        logger.debug("Failed to load %s: %s", signer_name, exc)
        raise CredentialError(signer_name, exc) from exc

    params.private_key = key
    params.certificates = certs
    params.name = params.key_name()
    logger.info("Loaded %s as %s (%d certificate(s))", signer_name, params.name, len(certs))


# ------------------------------------------------------------------
# Keystore-backed signers
# ------------------------------------------------------------------


def _load_from_keystore(
    params: SignerParams,
    signer_name: str,
    retriever: PasswordRetriever,
    registry: ProviderRegistry,
) -> tuple[str, PrivateKey, list[x509.Certificate]]:
    store = str(params.keystore_file)
    keystore = _new_keystore(params, registry)

    store_passwords = retriever.get_passwords(
        params.keystore_password_spec or SPEC_STDIN,
        f"Keystore password for {signer_name}",
        params.extra_encodings,
    )
    path = None if store == KEYSTORE_FILE_NONE else Path(store)
    load_keystore(keystore, path, store_passwords)

    alias = params.keystore_key_alias
    if alias is None:
        alias = find_key_alias(keystore, store)
    if not keystore.is_key_entry(alias):
        raise AliasNotFoundError(store, alias)

    label = f'Key "{alias}" password for {signer_name}'
    try:
        if params.key_password_spec is not None:
            key_passwords = retriever.get_passwords(
                params.key_password_spec, label, params.extra_encodings
            )
            key = get_keystore_key(keystore, alias, key_passwords)
        else:
            try:
                key = get_keystore_key(keystore, alias, store_passwords)
            except UnrecoverableKeyError:
                logger.debug("Keystore password does not unlock %r, prompting", alias)
                key_passwords = retriever.get_passwords(SPEC_STDIN, label, params.extra_encodings)
                key = get_keystore_key(keystore, alias, key_passwords)
    except UnrecoverableKeyError as exc:
        raise UnrecoverableKeyError(
            f'Failed to obtain key with alias "{alias}" from {store}. Wrong password?'
        ) from exc

    if key is None:
        raise AliasNotFoundError(store, alias)
    if not isinstance(key, _PRIVATE_KEY_TYPES):
        raise KeyStoreError(
            f'{store} entry "{alias}" does not contain a private key.'
            f" It contains a key of type: {type(key).__name__}"
        )

    chain = keystore.get_certificate_chain(alias)
    if not chain:
        raise NoCertificatesError(f'{store} entry "{alias}" does not contain certificates')
    return alias, key, list(chain)


def _new_keystore(params: SignerParams, registry: ProviderRegistry) -> KeyStore:
    type_name = params.keystore_type or DEFAULT_KEYSTORE_TYPE
    if params.keystore_provider_name is not None:
        return registry.get_keystore(type_name, params.keystore_provider_name)
    if params.keystore_provider_class is not None:
        provider = new_provider(params.keystore_provider_class, params.keystore_provider_arg)
        return registry.get_keystore(type_name, provider)
    return registry.get_keystore(type_name)


def load_keystore(
    keystore: KeyStore,
    path: Path | None,
    passwords: Sequence[CandidatePassword],
) -> None:
    """Load *keystore* from *path* with the first password that opens it.

    Raises
    ------
    PasswordExhaustedError
        If *passwords* is empty. The store is never opened.
    KeyStoreError
        The last failure, if no password opened the store.
    """
    if not passwords:
        raise PasswordExhaustedError("No keystore passwords")
    data = path.read_bytes() if path is not None else None
    *earlier, last = passwords
    for password in earlier:
        try:
            keystore.load(data, password.value)
        except KeyStoreError:
            logger.debug("Keystore %s rejected a %s password", path, password.encoding)
            continue
        return
    keystore.load(data, last.value)


def find_key_alias(keystore: KeyStore, store: str) -> str:
    """Return the alias of the only key entry in *keystore*."""
    key_aliases = [alias for alias in keystore.aliases() if keystore.is_key_entry(alias)]
    if len(key_aliases) > 1:
        raise AmbiguousAliasError(store, key_aliases)
    if not key_aliases:
        raise AliasNotFoundError(store)
    return key_aliases[0]


def get_keystore_key(
    keystore: KeyStore,
    alias: str,
    passwords: Sequence[CandidatePassword],
) -> PrivateKey | None:
    """Recover the key under *alias* with the first password that unlocks it.

    Only wrong-password failures move on to the next candidate.
    """
    if not passwords:
        raise PasswordExhaustedError("No key passwords")
    *earlier, last = passwords
    for password in earlier:
        try:
            return keystore.get_key(alias, password.value)
        except UnrecoverableKeyError:
            logger.debug("Key %r rejected a %s password", alias, password.encoding)
    return keystore.get_key(alias, last.value)


# ------------------------------------------------------------------
# File-backed signers
# ------------------------------------------------------------------


def _load_from_files(
    params: SignerParams,
    signer_name: str,
    retriever: PasswordRetriever,
    registry: ProviderRegistry,
) -> tuple[PrivateKey, list[x509.Certificate]]:
    key_file = str(params.key_file)
    if params.cert_file is None:
        raise ConfigurationError("Certificate file (--cert) must be specified")

    blob = unarmor(Path(key_file).read_bytes())
    try:
        encrypted = EncryptedPrivateKeyInfo(blob)
    except KeyParseError as exc:
        if params.key_password_spec is not None:
            raise KeyParseError(
                f"Failed to parse encrypted private key blob {key_file}"
            ) from exc
        pkcs8 = blob
    else:
        passwords = retriever.get_passwords(
            params.key_password_spec or SPEC_STDIN,
            f"Private key password for {signer_name}",
            params.extra_encodings,
        )
        pkcs8 = decrypt_pkcs8_encoded_key(encrypted, passwords)

    try:
        key = decode_pkcs8_private_key(pkcs8, registry)
    except UnsupportedKeyAlgorithmError as exc:
        raise UnsupportedKeyAlgorithmError(
            f"Failed to load PKCS #8 encoded private key from {key_file}: {exc}"
        ) from exc

    certs = read_certificate_file(params.cert_file)
    if not certs:
        raise NoCertificatesError(f"{params.cert_file} does not contain certificates")
    return key, certs


def decrypt_pkcs8_encoded_key(
    encrypted: EncryptedPrivateKeyInfo,
    passwords: Sequence[CandidatePassword],
) -> bytes:
    """Decrypt *encrypted* with the first working candidate password.

    Raises
    ------
    PasswordExhaustedError
        If *passwords* is empty.
    DecryptionError
        The last decryption failure, if any candidate failed that way.
    InvalidKeySpecError
        Otherwise the last invalid-key failure.
    """
    last_decryption: DecryptionError | None = None
    last_key_spec: InvalidKeySpecError | None = None
    for password in passwords:
        try:
            return encrypted.decrypt(password.value)
        except DecryptionError as exc:
            last_decryption = exc
        except InvalidKeySpecError as exc:
            last_key_spec = exc
    if last_decryption is not None:
        raise last_decryption
    if last_key_spec is not None:
        raise last_key_spec
    raise PasswordExhaustedError("No key passwords")


def decode_pkcs8_private_key(pkcs8_der: bytes, registry: ProviderRegistry) -> PrivateKey:
    """Decode unencrypted PKCS #8 DER with the RSA, EC and DSA factories, in order."""
    for algorithm in KEY_ALGORITHM_ORDER:
        factory = registry.get_key_factory(algorithm)
        try:
            key = factory.generate_private(pkcs8_der)
        except InvalidKeySpecError:
            logger.debug("Private key is not %s", algorithm)
            continue
        logger.debug("Decoded %s private key", algorithm)
        return key
    raise UnsupportedKeyAlgorithmError("Not an RSA, EC, or DSA private key")
