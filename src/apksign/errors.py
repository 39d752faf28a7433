"""Exception hierarchy for apksign.

Every error the tool raises on purpose derives from :class:`ApkSignError`,
so command handlers can catch one type at the command boundary and turn it
into a single-line diagnostic.
"""
from __future__ import annotations


class ApkSignError(Exception):
    """Base class for all apksign errors."""


# ------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------


class ConfigurationError(ApkSignError):
    """Raised for conflicting, missing, or malformed user-supplied parameters."""


class UnsupportedEncodingError(ConfigurationError):
    """Raised when a password character encoding name is not known.

    Parameters
    ----------
    encoding:
        The encoding name that could not be resolved.
    """

    def __init__(self, encoding: str) -> None:
        self.encoding = encoding
        super().__init__(f"Unsupported password character encoding: {encoding}")


class OptionsError(ConfigurationError):
    """Raised when the command-line token stream is malformed."""


class ProviderError(ApkSignError):
    """Raised when a cryptographic provider cannot be located or instantiated."""


# ------------------------------------------------------------------
# Credential loading
# ------------------------------------------------------------------


class PasswordExhaustedError(ApkSignError):
    """Raised when no candidate password was available to try."""


class AliasNotFoundError(ApkSignError):
    """Raised when a keystore has no usable key entry for the requested alias.

    Parameters
    ----------
    store:
        Display path of the keystore.
    alias:
        The alias that was requested, or None when no key entry exists at all.
    """

    def __init__(self, store: str, alias: str | None = None) -> None:
        self.store = store
        self.alias = alias
        if alias is None:
            message = f"{store} does not contain key entries"
        else:
            message = f'{store} entry "{alias}" does not contain a key'
        super().__init__(message)


class AmbiguousAliasError(ApkSignError):
    """Raised when a keystore holds several key entries and no alias was given."""

    def __init__(self, store: str, aliases: list[str]) -> None:
        self.store = store
        self.aliases = aliases
        super().__init__(
            f"{store} contains multiple key entries. --ks-key-alias option must be"
            " used to specify which entry to use."
        )


class NoCertificatesError(ApkSignError):
    """Raised when a signer resolves to an empty certificate chain."""


class UnsupportedKeyAlgorithmError(ApkSignError):
    """Raised when no key factory accepts a PKCS#8 encoded key."""


class KeyParseError(ApkSignError):
    """Raised when a key blob is not the structure the caller asked for."""


class InvalidKeySpecError(ApkSignError):
    """Raised when bytes are not a valid encoding for the requested key type."""


class DecryptionError(ApkSignError):
    """Raised when an encrypted key cannot be decrypted with a derived key."""


class KeyStoreError(ApkSignError):
    """Raised when a keystore cannot be read or an entry cannot be used."""


class KeyStoreIntegrityError(KeyStoreError):
    """Raised when a keystore's integrity check fails, usually a wrong store password."""


class UnrecoverableKeyError(KeyStoreError):
    """Raised when a key entry cannot be recovered, usually a wrong key password."""


class CredentialError(ApkSignError):
    """Raised when a signer's private key and certificates cannot be loaded.

    Parameters
    ----------
    signer_name:
        Display name of the signer that failed (e.g. ``"signer #1"``).
    cause:
        The underlying failure.
    """

    def __init__(self, signer_name: str, cause: BaseException) -> None:
        self.signer_name = signer_name
        self.cause = cause
        detail = str(cause) or type(cause).__name__
        super().__init__(f'Failed to load signer "{signer_name}": {detail}')


# ------------------------------------------------------------------
# Lineage
# ------------------------------------------------------------------


class LineageError(ApkSignError):
    """Base class for signing certificate lineage errors."""


class LineageFormatError(LineageError):
    """Raised when a persisted lineage cannot be decoded."""


class LineageMismatchError(LineageError):
    """Raised when a rotation does not extend the lineage's most recent signer."""


class SignerNotInLineageError(LineageError):
    """Raised when a signer's certificate is not part of the lineage.

    Parameters
    ----------
    signer_name:
        Display name of the missing signer.
    """

    def __init__(self, signer_name: str) -> None:
        self.signer_name = signer_name
        super().__init__(f"The signer {signer_name} was not found in the specified lineage.")


# ------------------------------------------------------------------
# Signing engine
# ------------------------------------------------------------------


class EngineError(ApkSignError):
    """Raised when the signing/verification engine cannot be found or fails."""
