"""Pluggable APK signing and verification engines."""
from __future__ import annotations

from apksign.engine.base import (
    DEFAULT_ENGINE,
    ENGINE_ENTRY_POINT_GROUP,
    SignerConfig,
    SigningEngine,
    SignRequest,
    VerifyRequest,
    VerifyResult,
    engines,
    load_engine,
)
from apksign.engine.apksigtool import ApkSigToolEngine

engines.register_class(DEFAULT_ENGINE, ApkSigToolEngine)

__all__ = [
    "ApkSigToolEngine",
    "DEFAULT_ENGINE",
    "ENGINE_ENTRY_POINT_GROUP",
    "SignRequest",
    "SignerConfig",
    "SigningEngine",
    "VerifyRequest",
    "VerifyResult",
    "engines",
    "load_engine",
]
