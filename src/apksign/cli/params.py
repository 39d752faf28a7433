"""Option handlers shared by the commands.

Signer options fill a :class:`SignerParams` one field at a time. Inside a
signer scope (``--old-signer``, ``--new-signer``, ``--signer``) the first
option that is not a signer option is pushed back to the command.
"""
from __future__ import annotations

from apksign.cli.options import OptionsParser
from apksign.errors import ConfigurationError
from apksign.passwords import get_charset_by_name
from apksign.providers import ProviderInstallSpec
from apksign.signer import SignerParams

_CAPABILITY_OPTIONS = {
    "set-installed-data": "set_installed_data",
    "set-shared-uid": "set_shared_uid",
    "set-permission": "set_permission",
    "set-rollback": "set_rollback",
    "set-auth": "set_auth",
}


def apply_signer_option(name: str, parser: OptionsParser, params: SignerParams) -> bool:
    """Apply the key source option *name* to *params*.

    Returns False if *name* is not a key source option.
    """
    if name == "ks":
        params.keystore_file = parser.get_required_value("KeyStore file")
    elif name == "ks-key-alias":
        params.keystore_key_alias = parser.get_required_value("KeyStore key alias")
    elif name == "ks-pass":
        params.keystore_password_spec = parser.get_required_value("KeyStore password")
    elif name == "key-pass":
        params.key_password_spec = parser.get_required_value("Key password")
    elif name == "pass-encoding":
        params.password_charset = get_charset_by_name(
            parser.get_required_value("Password character encoding")
        )
    elif name == "ks-type":
        params.keystore_type = parser.get_required_value("KeyStore type")
    elif name == "ks-provider-name":
        params.keystore_provider_name = parser.get_required_value("KeyStore Provider name")
    elif name == "ks-provider-class":
        params.keystore_provider_class = parser.get_required_value(
            "KeyStore Provider class name"
        )
    elif name == "ks-provider-arg":
        params.keystore_provider_arg = parser.get_required_value(
            "KeyStore Provider constructor argument"
        )
    elif name == "key":
        params.key_file = parser.get_required_value("Private key file")
    elif name == "cert":
        params.cert_file = parser.get_required_value("Certificate file")
    else:
        return False
    return True


def apply_provider_option(name: str, parser: OptionsParser, spec: ProviderInstallSpec) -> bool:
    """Apply a ``--provider-*`` option to *spec*. Returns False for other options."""
    if name == "provider-class":
        spec.class_name = parser.get_required_value("Provider class name")
    elif name == "provider-arg":
        spec.constructor_arg = parser.get_required_value("Provider constructor argument")
    elif name == "provider-pos":
        spec.position = parser.get_required_int_value("Provider position")
    else:
        return False
    return True


def process_signer_params(parser: OptionsParser) -> SignerParams:
    """Read one signer scope: key source and capability options.

    Raises
    ------
    ConfigurationError
        If the scope sets no key source option.
    """
    params = SignerParams()
    while True:
        name = parser.next_option()
        if name is None:
            break
        if apply_signer_option(name, parser, params):
            continue
        setter = _CAPABILITY_OPTIONS.get(name)
        if setter is not None:
            getattr(params.capabilities, setter)(parser.get_optional_boolean_value(True))
            continue
        parser.put_option()
        break
    if params.is_empty():
        raise ConfigurationError("Signer specified without arguments")
    return params
