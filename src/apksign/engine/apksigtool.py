"""Signing engine backed by the ``apksigtool`` package.

``apksigtool`` is an optional dependency (``pip install apksign[apksigtool]``)
and is imported on first use. It signs with a single signer and does not
write a rotation lineage.
"""
from __future__ import annotations

import logging

from cryptography.hazmat.primitives import serialization

from apksign.engine.base import SignRequest, SigningEngine, VerifyRequest, VerifyResult
from apksign.errors import EngineError

logger = logging.getLogger(__name__)


def _import_apksigtool():  # type: ignore[no-untyped-def]
    try:
        import apksigtool
    except ImportError as exc:
        raise EngineError(
            "The apksigtool engine requires the apksigtool package"
            " (pip install apksign[apksigtool])"
        ) from exc
    return apksigtool


class ApkSigToolEngine(SigningEngine):
    """Adapter over :func:`apksigtool.sign_apk` and
    :func:`apksigtool.verify_apk_and_check_signers`."""

    def sign(self, request: SignRequest) -> None:
        if len(request.signers) != 1:
            raise EngineError("The apksigtool engine supports exactly one signer")
        if request.lineage is not None:
            raise EngineError("The apksigtool engine does not support --lineage")
        apksigtool = _import_apksigtool()
        signer = request.signers[0]
        certificate = signer.certificates[0].public_bytes(serialization.Encoding.DER)
        logger.info("Signing %s as %s", request.input_apk, signer.name)
        try:
            apksigtool.sign_apk(
                str(request.input_apk),
                str(request.output_apk),
                cert=certificate,
                key=signer.private_key,
                v1=request.v1_signing_enabled,
                v2=request.v2_signing_enabled,
                v3=request.v3_signing_enabled,
            )
        except apksigtool.APKSigToolError as exc:
            raise EngineError(f"Failed to sign {request.input_apk}: {exc}") from exc

    def verify(self, request: VerifyRequest) -> VerifyResult:
        apksigtool = _import_apksigtool()
        try:
            result = apksigtool.verify_apk_and_check_signers(
                str(request.input_apk),
                check_v1=True,
                sdk_version=request.min_sdk_version,
            )
        except apksigtool.APKSigToolError as exc:
            return VerifyResult(verified=False, errors=[str(exc)])
        errors = [
            f"v{version} not verified ({failure})" for version, failure in result.apk_result.failed
        ]
        if result.error is not None:
            errors.append(result.error)
        return VerifyResult(
            verified=result.is_verified,
            verified_v1=result.is_v1_verified,
            verified_v2=result.is_v2_verified,
            verified_v3=result.is_v3_verified,
            errors=errors,
        )
