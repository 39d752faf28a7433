"""Tests for apksign.rotation: LineageRotator and lineage_signer."""
from __future__ import annotations

import pytest

from apksign.capabilities import SignerCapabilities, SignerCapabilitiesBuilder
from apksign.errors import ConfigurationError, LineageMismatchError, SignerNotInLineageError
from apksign.lineage import LineageSigner, SigningCertificateLineage
from apksign.rotation import CapabilityUpdate, LineageRotator, lineage_signer
from apksign.signer import SignerParams


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def rotator() -> LineageRotator:
    return LineageRotator()


@pytest.fixture()
def signer_a(ec_credentials) -> LineageSigner:
    return LineageSigner(ec_credentials.key, ec_credentials.cert, name="A")


@pytest.fixture()
def signer_b(ec_credentials_2) -> LineageSigner:
    return LineageSigner(ec_credentials_2.key, ec_credentials_2.cert, name="B")


@pytest.fixture()
def signer_c(ec_credentials_3) -> LineageSigner:
    return LineageSigner(ec_credentials_3.key, ec_credentials_3.cert, name="C")


def _caps(**flags: bool) -> SignerCapabilities:
    builder = SignerCapabilitiesBuilder()
    for name, enabled in flags.items():
        getattr(builder, f"set_{name}")(enabled)
    return builder.build()


# ---------------------------------------------------------------------------
# lineage_signer
# ---------------------------------------------------------------------------


class TestLineageSigner:
    def test_uses_first_certificate(self, ec_credentials, ec_credentials_2) -> None:
        params = SignerParams(
            name="release",
            private_key=ec_credentials.key,
            certificates=[ec_credentials.cert, ec_credentials_2.cert],
        )
        signer = lineage_signer(params)
        assert signer.certificate == ec_credentials.cert
        assert signer.display_name == "release"

    def test_explicit_name(self, ec_credentials) -> None:
        params = SignerParams(private_key=ec_credentials.key, certificates=[ec_credentials.cert])
        assert lineage_signer(params, name="old signer").name == "old signer"

    def test_unloaded_params_raise(self) -> None:
        with pytest.raises(ConfigurationError, match="has not been loaded"):
            lineage_signer(SignerParams(name="signer #1"))


# ---------------------------------------------------------------------------
# rotate
# ---------------------------------------------------------------------------


class TestRotate:
    def test_fresh_rotation(self, rotator: LineageRotator, signer_a, signer_b) -> None:
        lineage = rotator.rotate(
            signer_a,
            signer_b,
            old_capabilities=_caps(auth=True),
            new_capabilities=_caps(rollback=True),
            min_sdk_version=28,
        )
        assert lineage.certificates == [signer_a.certificate, signer_b.certificate]
        assert lineage.get_signer_capabilities(signer_a) == SignerCapabilities(auth=True)
        assert lineage.get_signer_capabilities(signer_b) == SignerCapabilities(rollback=True)
        assert lineage.min_sdk_version == 28
        lineage.verify()

    def test_fresh_rotation_keeps_min_sdk_as_given(
        self, rotator: LineageRotator, signer_a, signer_b
    ) -> None:
        assert rotator.rotate(signer_a, signer_b).min_sdk_version == 0

    def test_extend_existing(self, rotator: LineageRotator, signer_a, signer_b, signer_c) -> None:
        existing = rotator.rotate(signer_a, signer_b)
        lineage = rotator.rotate(
            signer_b,
            signer_c,
            old_capabilities=_caps(permission=True),
            existing=SigningCertificateLineage.from_bytes(existing.to_bytes()),
        )
        assert len(lineage) == 3
        assert lineage.get_signer_capabilities(signer_b) == SignerCapabilities(permission=True)
        lineage.verify()

    def test_extend_leaves_unset_flags_alone(
        self, rotator: LineageRotator, signer_a, signer_b, signer_c
    ) -> None:
        existing = rotator.rotate(
            signer_a, signer_b, new_capabilities=_caps(installed_data=True, shared_uid=True)
        )
        lineage = rotator.rotate(
            signer_b, signer_c, old_capabilities=_caps(shared_uid=False), existing=existing
        )
        assert lineage.get_signer_capabilities(signer_b) == SignerCapabilities(
            installed_data=True
        )

    def test_old_signer_must_be_most_recent(
        self, rotator: LineageRotator, signer_a, signer_b, signer_c
    ) -> None:
        existing = rotator.rotate(signer_a, signer_b)
        with pytest.raises(LineageMismatchError):
            rotator.rotate(signer_a, signer_c, existing=existing)

    def test_old_signer_not_in_lineage(
        self, rotator: LineageRotator, signer_a, signer_b, signer_c
    ) -> None:
        existing = rotator.rotate(signer_a, signer_b)
        with pytest.raises(SignerNotInLineageError, match="The signer C was not found"):
            rotator.rotate(signer_c, signer_a, existing=existing)

    def test_rejected_rotation_leaves_existing_untouched(
        self, rotator: LineageRotator, signer_a, signer_b, signer_c
    ) -> None:
        existing = rotator.rotate(signer_a, signer_b)
        encoded = existing.to_bytes()
        with pytest.raises(LineageMismatchError):
            rotator.rotate(
                signer_a, signer_c, old_capabilities=_caps(auth=True), existing=existing
            )
        assert existing.get_signer_capabilities(signer_a) == SignerCapabilities()
        assert existing.to_bytes() == encoded


# ---------------------------------------------------------------------------
# update_capabilities
# ---------------------------------------------------------------------------


class TestUpdateCapabilities:
    def test_change_is_reported(self, rotator: LineageRotator, signer_a, signer_b) -> None:
        lineage = rotator.rotate(signer_a, signer_b, old_capabilities=_caps(auth=True))
        update = rotator.update_capabilities(lineage, signer_a, _caps(auth=False))
        assert isinstance(update, CapabilityUpdate)
        assert update.changed
        assert update.before == SignerCapabilities(auth=True)
        assert update.after == SignerCapabilities()
        assert lineage.get_signer_capabilities(signer_a) == SignerCapabilities()

    def test_same_values_are_not_a_change(
        self, rotator: LineageRotator, signer_a, signer_b
    ) -> None:
        lineage = rotator.rotate(signer_a, signer_b, old_capabilities=_caps(auth=True))
        update = rotator.update_capabilities(lineage, signer_a, _caps(auth=True))
        assert not update.changed

    def test_empty_update_is_not_a_change(
        self, rotator: LineageRotator, signer_a, signer_b
    ) -> None:
        lineage = rotator.rotate(signer_a, signer_b)
        assert not rotator.update_capabilities(lineage, signer_b, _caps()).changed

    def test_only_target_signer_changes(
        self, rotator: LineageRotator, signer_a, signer_b
    ) -> None:
        lineage = rotator.rotate(signer_a, signer_b)
        rotator.update_capabilities(lineage, signer_b, _caps(auth=True))
        assert lineage.get_signer_capabilities(signer_a) == SignerCapabilities()
        assert lineage.get_signer_capabilities(signer_b) == SignerCapabilities(auth=True)

    def test_unknown_signer(self, rotator: LineageRotator, signer_a, signer_b, signer_c) -> None:
        lineage = rotator.rotate(signer_a, signer_b)
        with pytest.raises(SignerNotInLineageError):
            rotator.update_capabilities(lineage, signer_c, _caps(auth=True))
