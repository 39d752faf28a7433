"""Tests for apksign.cli.options and apksign.cli.params: option token handling."""
from __future__ import annotations

import pytest

from apksign.cli.options import OptionsParser
from apksign.cli.params import apply_provider_option, apply_signer_option, process_signer_params
from apksign.errors import ConfigurationError, OptionsError, UnsupportedEncodingError
from apksign.providers import ProviderInstallSpec
from apksign.signer import SignerParams


def _options(parser: OptionsParser) -> list[str]:
    names = []
    while True:
        name = parser.next_option()
        if name is None:
            break
        names.append(name)
    return names


# ---------------------------------------------------------------------------
# OptionsParser
# ---------------------------------------------------------------------------


class TestNextOption:
    def test_long_and_short_forms(self) -> None:
        parser = OptionsParser(["--verbose", "-v", "-Werr"])
        assert _options(parser) == ["verbose", "v", "Werr"]

    def test_stops_at_first_parameter(self) -> None:
        parser = OptionsParser(["-v", "app.apk", "--out", "x"])
        assert _options(parser) == ["v"]
        assert parser.get_remaining_params() == ["app.apk", "--out", "x"]

    def test_double_dash_ends_options(self) -> None:
        parser = OptionsParser(["-v", "--", "-weird-name.apk"])
        assert _options(parser) == ["v"]
        assert parser.get_remaining_params() == ["-weird-name.apk"]

    def test_equals_value(self) -> None:
        parser = OptionsParser(["--out=signed.apk"])
        assert parser.next_option() == "out"
        assert parser.option_original_form == "--out"
        assert parser.get_required_value("Output file name") == "signed.apk"

    def test_no_options(self) -> None:
        parser = OptionsParser([])
        assert parser.next_option() is None
        assert parser.get_remaining_params() == []


class TestValues:
    def test_required_value_from_next_token(self) -> None:
        parser = OptionsParser(["--ks", "release.p12"])
        parser.next_option()
        assert parser.get_required_value("KeyStore file") == "release.p12"
        assert parser.next_option() is None

    def test_required_value_missing(self) -> None:
        parser = OptionsParser(["--ks"])
        parser.next_option()
        with pytest.raises(OptionsError, match="KeyStore file missing after --ks"):
            parser.get_required_value("KeyStore file")

    def test_required_int(self) -> None:
        parser = OptionsParser(["--min-sdk-version", "24"])
        parser.next_option()
        assert parser.get_required_int_value("Minimum API Level") == 24

    def test_required_int_rejects_text(self) -> None:
        parser = OptionsParser(["--min-sdk-version", "Q"])
        parser.next_option()
        with pytest.raises(OptionsError, match="must be a decimal number: Q"):
            parser.get_required_int_value("Minimum API Level")

    @pytest.mark.parametrize(
        "tokens, expected, rest",
        [
            (["--v2-signing-enabled", "false", "a.apk"], False, ["a.apk"]),
            (["--v2-signing-enabled", "true", "a.apk"], True, ["a.apk"]),
            (["--v2-signing-enabled", "a.apk"], True, ["a.apk"]),
            (["--v2-signing-enabled=false", "a.apk"], False, ["a.apk"]),
        ],
    )
    def test_optional_boolean(self, tokens: list[str], expected: bool, rest: list[str]) -> None:
        parser = OptionsParser(tokens)
        parser.next_option()
        assert parser.get_optional_boolean_value(True) is expected
        assert parser.next_option() is None
        assert parser.get_remaining_params() == rest

    def test_optional_boolean_bad_inline_value(self) -> None:
        parser = OptionsParser(["--v1-signing-enabled=yes"])
        parser.next_option()
        with pytest.raises(OptionsError, match="Only true or false supported"):
            parser.get_optional_boolean_value(True)


class TestPutOption:
    def test_put_back_returns_same_option(self) -> None:
        parser = OptionsParser(["--out", "x"])
        assert parser.next_option() == "out"
        parser.put_option()
        assert parser.next_option() == "out"
        assert parser.get_required_value("Output file name") == "x"

    def test_put_back_twice_raises(self) -> None:
        parser = OptionsParser(["--out", "x"])
        parser.next_option()
        parser.put_option()
        with pytest.raises(RuntimeError):
            parser.put_option()

    def test_unprocessed_option_is_reported(self) -> None:
        parser = OptionsParser(["--out", "x"])
        parser.next_option()
        parser.put_option()
        with pytest.raises(OptionsError, match="Unprocessed option: --out"):
            parser.get_remaining_params()


# ---------------------------------------------------------------------------
# Signer and provider options
# ---------------------------------------------------------------------------


class TestApplySignerOption:
    def test_fills_params(self) -> None:
        parser = OptionsParser(
            [
                "--ks", "release.p12",
                "--ks-key-alias", "release",
                "--ks-pass", "file:pw.txt",
                "--key-pass", "pass:k",
                "--pass-encoding", "latin1",
                "--ks-type", "PEMKS",
            ]
        )
        params = SignerParams()
        assert _options_with(parser, params) == []
        assert params.keystore_file == "release.p12"
        assert params.keystore_key_alias == "release"
        assert params.keystore_password_spec == "file:pw.txt"
        assert params.key_password_spec == "pass:k"
        assert params.password_charset == "iso8859-1"
        assert params.keystore_type == "PEMKS"

    def test_unknown_encoding(self) -> None:
        parser = OptionsParser(["--pass-encoding", "nope-1"])
        parser.next_option()
        with pytest.raises(UnsupportedEncodingError):
            apply_signer_option("pass-encoding", parser, SignerParams())

    def test_non_signer_option(self) -> None:
        parser = OptionsParser(["--out", "x"])
        assert not apply_signer_option(parser.next_option(), parser, SignerParams())


def _options_with(parser: OptionsParser, params: SignerParams) -> list[str]:
    rejected = []
    while True:
        name = parser.next_option()
        if name is None:
            break
        if not apply_signer_option(name, parser, params):
            rejected.append(name)
    return rejected


class TestApplyProviderOption:
    def test_fills_spec(self) -> None:
        parser = OptionsParser(
            ["--provider-class", "pkg.mod:Prov", "--provider-arg", "cfg", "--provider-pos", "1"]
        )
        spec = ProviderInstallSpec()
        while True:
            name = parser.next_option()
            if name is None:
                break
            assert apply_provider_option(name, parser, spec)
        assert spec == ProviderInstallSpec("pkg.mod:Prov", "cfg", 1)


class TestProcessSignerParams:
    def test_scope_ends_at_foreign_option(self) -> None:
        parser = OptionsParser(
            ["--ks", "old.p12", "--set-rollback", "true", "--new-signer", "--ks", "new.p12"]
        )
        params = process_signer_params(parser)
        assert params.keystore_file == "old.p12"
        assert params.capabilities.build().rollback is True
        assert parser.next_option() == "new-signer"

    def test_capability_defaults_to_true(self) -> None:
        parser = OptionsParser(["--key", "k.pk8", "--cert", "c.pem", "--set-auth", "x.apk"])
        params = process_signer_params(parser)
        caps = params.capabilities.build()
        assert caps.auth is True
        assert caps.configured == frozenset({"auth"})

    def test_capability_false(self) -> None:
        parser = OptionsParser(["--key", "k.pk8", "--set-installed-data", "false"])
        caps = process_signer_params(parser).capabilities.build()
        assert caps.installed_data is False
        assert caps.configured == frozenset({"installed_data"})

    def test_empty_scope_raises(self) -> None:
        parser = OptionsParser(["--out", "lineage.bin"])
        with pytest.raises(ConfigurationError, match="Signer specified without arguments"):
            process_signer_params(parser)
