"""Tests for apksign.engine: engine lookup and the apksigtool adapter."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

from apksign.engine import (
    DEFAULT_ENGINE,
    ApkSigToolEngine,
    SignerConfig,
    SigningEngine,
    SignRequest,
    VerifyRequest,
    VerifyResult,
    engines,
    load_engine,
)
from apksign.errors import EngineError
from apksign.lineage import LineageSigner, SigningCertificateLineage


class NullEngine(SigningEngine):
    def sign(self, request: SignRequest) -> None:
        request.output_apk.write_bytes(request.input_apk.read_bytes())

    def verify(self, request: VerifyRequest) -> VerifyResult:
        return VerifyResult(verified=True)


@pytest.fixture()
def null_engine():
    engines.register_class("null", NullEngine)
    yield "null"
    engines.deregister("null")


@pytest.fixture()
def signer_config(ec_credentials) -> SignerConfig:
    return SignerConfig(
        name="release", private_key=ec_credentials.key, certificates=[ec_credentials.cert]
    )


# ---------------------------------------------------------------------------
# load_engine
# ---------------------------------------------------------------------------


class TestLoadEngine:
    def test_default_engine_is_registered(self) -> None:
        assert DEFAULT_ENGINE in engines
        assert isinstance(load_engine(), ApkSigToolEngine)

    def test_registered_engine(self, null_engine: str) -> None:
        assert isinstance(load_engine(null_engine), NullEngine)

    def test_unknown_engine(self) -> None:
        with pytest.raises(EngineError, match="Unknown signing engine: ghost") as excinfo:
            load_engine("ghost")
        assert DEFAULT_ENGINE in str(excinfo.value)

    def test_engine_round_trip(self, null_engine: str, signer_config, tmp_path: Path) -> None:
        source = tmp_path / "in.apk"
        source.write_bytes(b"PK\x03\x04")
        engine = load_engine(null_engine)
        engine.sign(SignRequest(source, tmp_path / "out.apk", [signer_config]))
        assert (tmp_path / "out.apk").read_bytes() == b"PK\x03\x04"
        assert engine.verify(VerifyRequest(tmp_path / "out.apk")).verified


# ---------------------------------------------------------------------------
# ApkSigToolEngine
# ---------------------------------------------------------------------------


class TestApkSigToolEngine:
    def test_rejects_multiple_signers(self, signer_config, tmp_path: Path) -> None:
        request = SignRequest(tmp_path / "a.apk", tmp_path / "b.apk", [signer_config] * 2)
        with pytest.raises(EngineError, match="exactly one signer"):
            ApkSigToolEngine().sign(request)

    def test_rejects_lineage(
        self, signer_config, ec_credentials, ec_credentials_2, tmp_path: Path
    ) -> None:
        lineage = SigningCertificateLineage.create(
            LineageSigner(ec_credentials.key, ec_credentials.cert),
            LineageSigner(ec_credentials_2.key, ec_credentials_2.cert),
        )
        request = SignRequest(
            tmp_path / "a.apk", tmp_path / "b.apk", [signer_config], lineage=lineage
        )
        with pytest.raises(EngineError, match="--lineage"):
            ApkSigToolEngine().sign(request)

    def test_missing_package(
        self, signer_config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setitem(sys.modules, "apksigtool", None)
        with pytest.raises(EngineError, match="requires the apksigtool package"):
            ApkSigToolEngine().verify(VerifyRequest(tmp_path / "a.apk"))
