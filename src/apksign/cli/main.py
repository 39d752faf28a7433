"""CLI entry point for apksign.

Invoked as::

    apksign [OPTIONS] COMMAND [ARGS]...

or, during development::

    python -m apksign.cli.main

Commands
--------
sign      Sign an APK with one or more signers
verify    Verify the signatures of an APK
rotate    Add a signing key rotation to a lineage
lineage   Inspect a lineage and update signer capabilities
version   Show version information
engines   List the available signing engines

Each of ``sign``, ``verify``, ``rotate`` and ``lineage`` takes apksigner
style options, e.g.::

    apksign sign --ks release.p12 --ks-pass file:pw.txt --next-signer \\
        --key old.pk8 --cert old.x509.pem app.apk
"""
from __future__ import annotations

import hashlib
import logging
import os
import shutil
import sys
import tempfile
from pathlib import Path

import click
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, rsa
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from apksign import __version__
from apksign.capabilities import SignerCapabilities
from apksign.cli.options import OptionsParser
from apksign.cli.params import apply_provider_option, apply_signer_option, process_signer_params
from apksign.engine import DEFAULT_ENGINE, SignerConfig, SignRequest, VerifyRequest, engines, load_engine
from apksign.errors import ApkSignError, ConfigurationError, CredentialError
from apksign.lineage import SigningCertificateLineage
from apksign.passwords import PasswordRetriever
from apksign.providers import ProviderInstallSpec, default_registry, install_providers
from apksign.rotation import LineageRotator, lineage_signer
from apksign.signer import SignerParams, load_private_key_and_certs

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)

MAX_SDK_VERSION = 2**31 - 1

_RAW_ARGS = dict(
    ignore_unknown_options=True,
    allow_extra_args=True,
    help_option_names=["-h", "--help"],
)

_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("apksign")
    logger.handlers.clear()
    logger.setLevel(level)
    handler = RichHandler(console=err_console, show_time=False, show_path=False)
    handler.setLevel(level)
    logger.addHandler(handler)


def _fail(exc: BaseException, exit_code: int = 1) -> None:
    err_console.print(f"[red]Error:[/red] {escape(str(exc))}")
    sys.exit(exit_code)


def _unsupported_option(parser: OptionsParser) -> ConfigurationError:
    return ConfigurationError(
        f"Unsupported option: {parser.option_original_form}. See --help for supported options."
    )


# ------------------------------------------------------------------
# Root group
# ------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="apksign")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="APKSIGN_LOG_LEVEL",
    help="Diagnostic log level (env: APKSIGN_LOG_LEVEL).",
)
def cli(log_level: str) -> None:
    """Sign and verify APKs, and manage signing certificate lineages"""
    _configure_logging(log_level.upper())


# ------------------------------------------------------------------
# version / engines commands
# ------------------------------------------------------------------


@cli.command(name="version")
def version_command() -> None:
    """Show detailed version information."""
    console.print(f"[bold]apksign[/bold] v{__version__}")


@cli.command(name="engines")
def engines_command() -> None:
    """List the signing engines available to sign and verify."""
    from apksign.engine import ENGINE_ENTRY_POINT_GROUP

    engines.load_entrypoints(ENGINE_ENTRY_POINT_GROUP)
    console.print("[bold]Signing engines:[/bold]")
    for name in engines.list_plugins():
        marker = " (default)" if name == DEFAULT_ENGINE else ""
        console.print(f"  {name}{marker}")


# ------------------------------------------------------------------
# sign
# ------------------------------------------------------------------


@cli.command(name="sign", context_settings=_RAW_ARGS)
@click.option(
    "--engine",
    default=DEFAULT_ENGINE,
    show_default=True,
    envvar="APKSIGN_ENGINE",
    help="Signing engine to use (env: APKSIGN_ENGINE).",
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def sign_command(ctx: click.Context, engine: str, args: tuple[str, ...]) -> None:
    """Sign an APK.

    Signer options: --ks, --ks-key-alias, --ks-pass, --key-pass,
    --pass-encoding, --ks-type, --ks-provider-name, --ks-provider-class,
    --ks-provider-arg, --key, --cert, --v1-signer-name. Use --next-signer to
    start another signer.
    """
    if not args:
        click.echo(ctx.get_help())
        return
    try:
        _sign(engine, args)
    except CredentialError as exc:
        _fail(exc, exit_code=2)
    except ApkSignError as exc:
        _fail(exc)


def _sign(engine_name: str, args: tuple[str, ...]) -> None:
    output_apk: Path | None = None
    input_apk: Path | None = None
    verbose = False
    v1_enabled = v2_enabled = v3_enabled = True
    debuggable_permitted = True
    min_sdk_version: int | None = None
    max_sdk_version = MAX_SDK_VERSION
    signers: list[SignerParams] = []
    signer = SignerParams()
    lineage: SigningCertificateLineage | None = None
    providers: list[ProviderInstallSpec] = []
    provider_spec = ProviderInstallSpec()

    parser = OptionsParser(args)
    last_option: str | None = None
    while True:
        name = parser.next_option()
        if name is None:
            break
        last_option = parser.option_original_form
        if name == "out":
            output_apk = Path(parser.get_required_value("Output file name"))
        elif name == "in":
            input_apk = Path(parser.get_required_value("Input file name"))
        elif name == "min-sdk-version":
            min_sdk_version = parser.get_required_int_value("Minimum API Level")
        elif name == "max-sdk-version":
            max_sdk_version = parser.get_required_int_value("Maximum API Level")
        elif name == "v1-signing-enabled":
            v1_enabled = parser.get_optional_boolean_value(True)
        elif name == "v2-signing-enabled":
            v2_enabled = parser.get_optional_boolean_value(True)
        elif name == "v3-signing-enabled":
            v3_enabled = parser.get_optional_boolean_value(True)
        elif name == "debuggable-apk-permitted":
            debuggable_permitted = parser.get_optional_boolean_value(True)
        elif name == "next-signer":
            if not signer.is_empty():
                signers.append(signer)
                signer = SignerParams()
        elif name == "v1-signer-name":
            signer.v1_signer_name = parser.get_required_value("JAR signature file basename")
        elif name == "lineage":
            lineage = SigningCertificateLineage.read_from_file(
                parser.get_required_value("Lineage file")
            )
        elif name in ("v", "verbose"):
            verbose = parser.get_optional_boolean_value(True)
        elif name == "next-provider":
            if not provider_spec.is_empty():
                providers.append(provider_spec)
                provider_spec = ProviderInstallSpec()
        elif apply_signer_option(name, parser, signer):
            continue
        elif apply_provider_option(name, parser, provider_spec):
            continue
        else:
            raise _unsupported_option(parser)
    if not signer.is_empty():
        signers.append(signer)
    if not provider_spec.is_empty():
        providers.append(provider_spec)

    if not signers:
        raise ConfigurationError("At least one signer must be specified")

    input_apk = _input_apk(parser, input_apk, last_option, "Missing input APK", "input APK")
    if min_sdk_version is not None and min_sdk_version > max_sdk_version:
        raise ConfigurationError(
            f"Min API Level ({min_sdk_version}) > max API Level ({max_sdk_version})"
        )

    engine = load_engine(engine_name)
    registry = default_registry()
    install_providers(providers, registry)

    signer_configs: list[SignerConfig] = []
    with PasswordRetriever() as retriever:
        for number, params in enumerate(signers, start=1):
            params.name = f"signer #{number}"
            load_private_key_and_certs(params, retriever, registry)
            signer_configs.append(_signer_config(params))

    if output_apk is None:
        output_apk = input_apk
    same_file = input_apk.resolve() == output_apk.resolve()
    if same_file:
        fd, tmp_name = tempfile.mkstemp(prefix="apksigner", suffix=".apk")
        os.close(fd)
        tmp_output = Path(tmp_name)
    else:
        tmp_output = output_apk

    request = SignRequest(
        input_apk=input_apk,
        output_apk=tmp_output,
        signers=signer_configs,
        v1_signing_enabled=v1_enabled,
        v2_signing_enabled=v2_enabled,
        v3_signing_enabled=v3_enabled,
        debuggable_apk_permitted=debuggable_permitted,
        min_sdk_version=min_sdk_version,
        lineage=lineage,
    )
    try:
        engine.sign(request)
        if same_file:
            shutil.move(str(tmp_output), str(output_apk))
    finally:
        if same_file and tmp_output.exists():
            tmp_output.unlink()

    if verbose:
        console.print("Signed")


def _signer_config(params: SignerParams) -> SignerConfig:
    if params.private_key is None or params.certificates is None:
        raise ConfigurationError(f"Signer {params.name} has not been loaded")
    return SignerConfig(
        name=params.v1_basename(),
        private_key=params.private_key,
        certificates=params.certificates,
    )


def _input_apk(
    parser: OptionsParser,
    input_apk: Path | None,
    last_option: str | None,
    missing_message: str,
    positional_name: str,
) -> Path:
    params = parser.get_remaining_params()
    if input_apk is not None:
        if params:
            raise ConfigurationError(f"Unexpected parameter(s) after {last_option}: {params[0]}")
        return input_apk
    if not params:
        raise ConfigurationError(missing_message)
    if len(params) > 1:
        raise ConfigurationError(
            f"Unexpected parameter(s) after {positional_name} ({params[1]})"
        )
    return Path(params[0])


# ------------------------------------------------------------------
# verify
# ------------------------------------------------------------------


@cli.command(name="verify", context_settings=_RAW_ARGS)
@click.option(
    "--engine",
    default=DEFAULT_ENGINE,
    show_default=True,
    envvar="APKSIGN_ENGINE",
    help="Verification engine to use (env: APKSIGN_ENGINE).",
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def verify_command(ctx: click.Context, engine: str, args: tuple[str, ...]) -> None:
    """Verify the signatures of an APK.

    Options: --in, --min-sdk-version, --max-sdk-version, --print-certs,
    -v/--verbose, --Werr.
    """
    if not args:
        click.echo(ctx.get_help())
        return
    try:
        exit_code = _verify(engine, args)
    except ApkSignError as exc:
        _fail(exc)
        return
    if exit_code:
        sys.exit(exit_code)


def _verify(engine_name: str, args: tuple[str, ...]) -> int:
    input_apk: Path | None = None
    min_sdk_version: int | None = None
    max_sdk_version: int | None = None
    print_certs = False
    verbose = False
    warnings_as_errors = False

    parser = OptionsParser(args)
    last_option: str | None = None
    while True:
        name = parser.next_option()
        if name is None:
            break
        last_option = parser.option_original_form
        if name == "min-sdk-version":
            min_sdk_version = parser.get_required_int_value("Minimum API Level")
        elif name == "max-sdk-version":
            max_sdk_version = parser.get_required_int_value("Maximum API Level")
        elif name == "print-certs":
            print_certs = parser.get_optional_boolean_value(True)
        elif name in ("v", "verbose"):
            verbose = parser.get_optional_boolean_value(True)
        elif name == "Werr":
            warnings_as_errors = parser.get_optional_boolean_value(True)
        elif name == "in":
            input_apk = Path(parser.get_required_value("Input APK file"))
        else:
            raise _unsupported_option(parser)

    input_apk = _input_apk(parser, input_apk, last_option, "Missing APK", "APK")
    if (
        min_sdk_version is not None
        and max_sdk_version is not None
        and min_sdk_version > max_sdk_version
    ):
        raise ConfigurationError(
            f"Min API Level ({min_sdk_version}) > max API Level ({max_sdk_version})"
        )

    engine = load_engine(engine_name)
    result = engine.verify(
        VerifyRequest(
            input_apk=input_apk,
            min_sdk_version=min_sdk_version,
            max_sdk_version=max_sdk_version,
        )
    )

    if result.verified:
        if verbose:
            console.print("Verifies")
            console.print(f"Verified using v1 scheme (JAR signing): {_bool(result.verified_v1)}")
            console.print(
                f"Verified using v2 scheme (APK Signature Scheme v2): {_bool(result.verified_v2)}"
            )
            console.print(
                f"Verified using v3 scheme (APK Signature Scheme v3): {_bool(result.verified_v3)}"
            )
            console.print(f"Number of signers: {len(result.signer_certificates)}")
        if print_certs:
            for number, certificate in enumerate(result.signer_certificates, start=1):
                print_certificate(certificate, f"Signer #{number}", verbose)
    else:
        err_console.print("DOES NOT VERIFY")

    for error in result.errors:
        err_console.print(f"ERROR: {escape(error)}")
    warnings_out = err_console if warnings_as_errors else console
    for warning in result.warnings:
        warnings_out.print(f"WARNING: {escape(warning)}")

    if not result.verified:
        return 1
    if warnings_as_errors and result.warnings:
        return 1
    return 0


# ------------------------------------------------------------------
# rotate
# ------------------------------------------------------------------


@cli.command(name="rotate", context_settings=_RAW_ARGS)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def rotate_command(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Add a signing key rotation to a lineage.

    Options: --out (required), --in, --old-signer SIGNER-OPTIONS,
    --new-signer SIGNER-OPTIONS, --min-sdk-version, -v/--verbose,
    --provider-class, --provider-arg, --provider-pos, --next-provider.
    """
    if not args:
        click.echo(ctx.get_help())
        return
    try:
        _rotate(args)
    except ApkSignError as exc:
        _fail(exc)


def _rotate(args: tuple[str, ...]) -> None:
    output_lineage: Path | None = None
    input_lineage: Path | None = None
    verbose = False
    old_params: SignerParams | None = None
    new_params: SignerParams | None = None
    min_sdk_version = 0
    providers: list[ProviderInstallSpec] = []
    provider_spec = ProviderInstallSpec()

    parser = OptionsParser(args)
    last_option: str | None = None
    while True:
        name = parser.next_option()
        if name is None:
            break
        last_option = parser.option_original_form
        if name == "out":
            output_lineage = Path(parser.get_required_value("Output file name"))
        elif name == "in":
            input_lineage = Path(parser.get_required_value("Input file name"))
        elif name == "old-signer":
            old_params = process_signer_params(parser)
        elif name == "new-signer":
            new_params = process_signer_params(parser)
        elif name == "min-sdk-version":
            min_sdk_version = parser.get_required_int_value("Minimum API Level")
        elif name in ("v", "verbose"):
            verbose = parser.get_optional_boolean_value(True)
        elif name == "next-provider":
            if not provider_spec.is_empty():
                providers.append(provider_spec)
                provider_spec = ProviderInstallSpec()
        elif apply_provider_option(name, parser, provider_spec):
            continue
        else:
            raise _unsupported_option(parser)
    if not provider_spec.is_empty():
        providers.append(provider_spec)

    if old_params is None:
        raise ConfigurationError("Signer parameters for old signer not present")
    if new_params is None:
        raise ConfigurationError("Signer parameters for new signer not present")
    if output_lineage is None:
        raise ConfigurationError("Output lineage file parameter not present")
    remaining = parser.get_remaining_params()
    if remaining:
        raise ConfigurationError(f"Unexpected parameter(s) after {last_option}: {remaining[0]}")

    registry = default_registry()
    install_providers(providers, registry)

    with PasswordRetriever() as retriever:
        old_params.name = "old signer"
        load_private_key_and_certs(old_params, retriever, registry)
        new_params.name = "new signer"
        load_private_key_and_certs(new_params, retriever, registry)

    existing = None
    if input_lineage is not None:
        existing = SigningCertificateLineage.read_from_file(input_lineage)
    lineage = LineageRotator().rotate(
        lineage_signer(old_params),
        lineage_signer(new_params),
        old_capabilities=old_params.capabilities.build(),
        new_capabilities=new_params.capabilities.build(),
        existing=existing,
        min_sdk_version=min_sdk_version,
    )
    lineage.write_to_file(output_lineage)
    if verbose:
        console.print("Rotation entry generated.")


# ------------------------------------------------------------------
# lineage
# ------------------------------------------------------------------


@cli.command(name="lineage", context_settings=_RAW_ARGS)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.pass_context
def lineage_command(ctx: click.Context, args: tuple[str, ...]) -> None:
    """Inspect a lineage and update signer capabilities.

    Options: --in (required), --out, --signer SIGNER-OPTIONS (repeatable),
    --print-certs, -v/--verbose.
    """
    if not args:
        click.echo(ctx.get_help())
        return
    try:
        _lineage(args)
    except ApkSignError as exc:
        _fail(exc)


def _lineage(args: tuple[str, ...]) -> None:
    verbose = False
    print_certs = False
    input_lineage: Path | None = None
    output_lineage: Path | None = None
    signers: list[SignerParams] = []

    parser = OptionsParser(args)
    while True:
        name = parser.next_option()
        if name is None:
            break
        if name == "in":
            input_lineage = Path(parser.get_required_value("Input file name"))
        elif name == "out":
            output_lineage = Path(parser.get_required_value("Output file name"))
        elif name == "signer":
            signers.append(process_signer_params(parser))
        elif name in ("v", "verbose"):
            verbose = parser.get_optional_boolean_value(True)
        elif name == "print-certs":
            print_certs = parser.get_optional_boolean_value(True)
        else:
            raise _unsupported_option(parser)
    if input_lineage is None:
        raise ConfigurationError("Input lineage file parameter not present")

    lineage = SigningCertificateLineage.read_from_file(input_lineage)
    rotator = LineageRotator()
    lineage_updated = False
    with PasswordRetriever() as retriever:
        for number, params in enumerate(signers, start=1):
            params.name = f"signer #{number}"
            load_private_key_and_certs(params, retriever)
            update = rotator.update_capabilities(
                lineage, lineage_signer(params), params.capabilities.build()
            )
            if update.changed:
                lineage_updated = True
                if verbose:
                    console.print(f"Updated signer capabilities for {params.name}.")
            elif verbose:
                console.print(
                    f"The provided signer capabilities for {params.name} are unchanged."
                )

    if print_certs:
        for number, certificate in enumerate(lineage.certificates, start=1):
            print_certificate(certificate, f"Signer #{number} in lineage", verbose)
            print_capabilities(lineage.get_signer_capabilities(certificate))

    if lineage_updated:
        if output_lineage is None:
            raise ConfigurationError(
                "The lineage was modified but an output file for the lineage was not specified"
            )
        lineage.write_to_file(output_lineage)
        if verbose:
            console.print(f"Updated lineage saved to {output_lineage}.")


# ------------------------------------------------------------------
# Output helpers
# ------------------------------------------------------------------


def print_certificate(certificate: x509.Certificate, name: str, verbose: bool) -> None:
    """Print the DN and digests of *certificate*, plus key details if *verbose*."""
    encoded = certificate.public_bytes(serialization.Encoding.DER)
    console.print(f"{name} certificate DN: {escape(certificate.subject.rfc4514_string())}")
    console.print(f"{name} certificate SHA-256 digest: {hashlib.sha256(encoded).hexdigest()}")
    console.print(f"{name} certificate SHA-1 digest: {hashlib.sha1(encoded).hexdigest()}")
    console.print(f"{name} certificate MD5 digest: {hashlib.md5(encoded).hexdigest()}")
    if not verbose:
        return
    public_key = certificate.public_key()
    algorithm, key_size = _key_details(public_key)
    console.print(f"{name} key algorithm: {algorithm}")
    console.print(f"{name} key size (bits): {key_size if key_size is not None else 'n/a'}")
    encoded_key = public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )
    console.print(f"{name} public key SHA-256 digest: {hashlib.sha256(encoded_key).hexdigest()}")
    console.print(f"{name} public key SHA-1 digest: {hashlib.sha1(encoded_key).hexdigest()}")
    console.print(f"{name} public key MD5 digest: {hashlib.md5(encoded_key).hexdigest()}")


def _key_details(public_key: object) -> tuple[str, int | None]:
    if isinstance(public_key, rsa.RSAPublicKey):
        return "RSA", public_key.key_size
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return "EC", public_key.key_size
    if isinstance(public_key, dsa.DSAPublicKey):
        return "DSA", public_key.key_size
    return type(public_key).__name__, None


def print_capabilities(capabilities: SignerCapabilities) -> None:
    """Print each capability flag of a lineage signer."""
    console.print(f"Has installed data capability: {_bool(capabilities.installed_data)}")
    console.print(f"Has shared UID capability    : {_bool(capabilities.shared_uid)}")
    console.print(f"Has permission capability    : {_bool(capabilities.permission)}")
    console.print(f"Has rollback capability      : {_bool(capabilities.rollback)}")
    console.print(f"Has auth capability          : {_bool(capabilities.auth)}")


def _bool(value: bool) -> str:
    return "true" if value else "false"


if __name__ == "__main__":
    cli()
