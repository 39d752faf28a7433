"""Capability grants a past signing certificate keeps after rotation.

Each signer in a lineage carries five independent boolean grants. They are
accumulated flag by flag while options are parsed, using
:class:`SignerCapabilitiesBuilder`, and frozen once into an immutable
:class:`SignerCapabilities` snapshot before the lineage code sees them.

The snapshot remembers which flags the caller set explicitly. Updating an
existing lineage node only touches those flags and leaves the rest alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag


class CapabilityFlag(IntFlag):
    """Bit values of the capability flags in the lineage wire format."""

    INSTALLED_DATA = 1
    SHARED_UID = 2
    PERMISSION = 4
    ROLLBACK = 8
    AUTH = 16


CAPABILITY_NAMES: tuple[str, ...] = (
    "installed_data",
    "shared_uid",
    "permission",
    "rollback",
    "auth",
)

_FLAG_BY_NAME: dict[str, CapabilityFlag] = {
    "installed_data": CapabilityFlag.INSTALLED_DATA,
    "shared_uid": CapabilityFlag.SHARED_UID,
    "permission": CapabilityFlag.PERMISSION,
    "rollback": CapabilityFlag.ROLLBACK,
    "auth": CapabilityFlag.AUTH,
}


@dataclass(frozen=True)
class SignerCapabilities:
    """Immutable snapshot of a signer's capability grants.

    Parameters
    ----------
    installed_data:
        Apps signed by the new key may access data installed under this one.
    shared_uid:
        Apps signed by this key may share a user ID with the new key's apps.
    permission:
        Signature permissions granted to this key stay granted.
    rollback:
        The platform may roll back to this key.
    auth:
        This key stays trusted for authenticating the app.
    configured:
        Names of the flags a caller explicitly set. Not part of equality.
    """

    installed_data: bool = False
    shared_uid: bool = False
    permission: bool = False
    rollback: bool = False
    auth: bool = False
    configured: frozenset[str] = field(default_factory=frozenset, compare=False)

    @classmethod
    def from_flags(cls, flags: int) -> "SignerCapabilities":
        """Build a snapshot from the lineage flag integer."""
        return cls(
            **{name: bool(flags & _FLAG_BY_NAME[name]) for name in CAPABILITY_NAMES}
        )

    @property
    def flags(self) -> int:
        """The lineage flag integer for this snapshot."""
        value = 0
        for name in CAPABILITY_NAMES:
            if getattr(self, name):
                value |= _FLAG_BY_NAME[name]
        return value

    def merged_into(self, current: "SignerCapabilities") -> "SignerCapabilities":
        """Return *current* with only this snapshot's configured flags applied."""
        values = {name: getattr(current, name) for name in CAPABILITY_NAMES}
        for name in self.configured:
            values[name] = getattr(self, name)
        return SignerCapabilities(**values)

    def to_dict(self) -> dict[str, bool]:
        """Serialise the five grants to a plain dictionary."""
        return {name: getattr(self, name) for name in CAPABILITY_NAMES}


class SignerCapabilitiesBuilder:
    """Accumulates explicitly set capability flags.

    Unset flags default to False in the built snapshot and are left out of
    :attr:`SignerCapabilities.configured`.
    """

    def __init__(self) -> None:
        self._values: dict[str, bool] = {}

    def set_installed_data(self, enabled: bool) -> "SignerCapabilitiesBuilder":
        return self._set("installed_data", enabled)

    def set_shared_uid(self, enabled: bool) -> "SignerCapabilitiesBuilder":
        return self._set("shared_uid", enabled)

    def set_permission(self, enabled: bool) -> "SignerCapabilitiesBuilder":
        return self._set("permission", enabled)

    def set_rollback(self, enabled: bool) -> "SignerCapabilitiesBuilder":
        return self._set("rollback", enabled)

    def set_auth(self, enabled: bool) -> "SignerCapabilitiesBuilder":
        return self._set("auth", enabled)

    def is_empty(self) -> bool:
        """Return True if no flag has been set."""
        return not self._values

    def build(self) -> SignerCapabilities:
        """Freeze the accumulated flags into a snapshot."""
        return SignerCapabilities(
            **{name: self._values.get(name, False) for name in CAPABILITY_NAMES},
            configured=frozenset(self._values),
        )

    def _set(self, name: str, enabled: bool) -> "SignerCapabilitiesBuilder":
        self._values[name] = enabled
        return self


__all__ = [
    "CAPABILITY_NAMES",
    "CapabilityFlag",
    "SignerCapabilities",
    "SignerCapabilitiesBuilder",
]
