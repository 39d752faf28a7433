"""LineageRotator: rotate signing keys and update signer capabilities.

A rotation either starts a new lineage (old signer -> new signer) or extends
an existing one, whose most recent signer must be the old signer. A
capability update changes the flags of one signer already in the lineage
and reports whether anything changed, so callers only write the lineage back
when it did.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from apksign.capabilities import SignerCapabilities
from apksign.errors import ConfigurationError, LineageMismatchError, SignerNotInLineageError
from apksign.lineage import LineageSigner, SigningCertificateLineage
from apksign.signer import SignerParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilityUpdate:
    """Outcome of a capability update.

    Parameters
    ----------
    changed:
        True if the signer's effective capabilities differ after the update.
    before:
        Capabilities before the update.
    after:
        Capabilities after the update.
    """

    changed: bool
    before: SignerCapabilities
    after: SignerCapabilities


def lineage_signer(params: SignerParams, name: str | None = None) -> LineageSigner:
    """Build a :class:`LineageSigner` from loaded signer params.

    The first certificate of the chain is the signing certificate.
    """
    if params.private_key is None or not params.certificates:
        raise ConfigurationError(f"Signer {name or params.name} has not been loaded")
    return LineageSigner(
        private_key=params.private_key,
        certificate=params.certificates[0],
        name=name or params.name,
    )


class LineageRotator:
    """Builds and updates signing certificate lineages.

    The rotator holds no state. Every method works on the lineage it is
    given.
    """

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def rotate(
        self,
        old_signer: LineageSigner,
        new_signer: LineageSigner,
        old_capabilities: SignerCapabilities | None = None,
        new_capabilities: SignerCapabilities | None = None,
        existing: SigningCertificateLineage | None = None,
        min_sdk_version: int = 0,
    ) -> SigningCertificateLineage:
        """Rotate from *old_signer* to *new_signer*.

        Parameters
        ----------
        old_signer:
            The signer being rotated away from.
        new_signer:
            The signer being rotated to.
        old_capabilities:
            Capabilities for the old signer. Only the flags the caller set
            are applied to an existing lineage.
        new_capabilities:
            Capabilities granted to the new signer.
        existing:
            Lineage to extend. A new one is built when None.
        min_sdk_version:
            Platform version gate for a new lineage. Ignored when extending.

        Returns
        -------
        SigningCertificateLineage
            The lineage ending with *new_signer*.

        Raises
        ------
        SignerNotInLineageError
            If *old_signer* is not in *existing*.
        LineageMismatchError
            If *old_signer* is in *existing* but is not its most recent signer.
        """
        old_capabilities = old_capabilities or SignerCapabilities()
        new_capabilities = new_capabilities or SignerCapabilities()

        if existing is None:
            logger.info(
                "Creating lineage %s -> %s (min SDK %d)",
                old_signer.display_name,
                new_signer.display_name,
                min_sdk_version,
            )
            return SigningCertificateLineage.create(
                old_signer,
                new_signer,
                min_sdk_version=min_sdk_version,
                parent_capabilities=old_capabilities,
                child_capabilities=new_capabilities,
            )

        # existing is left untouched when the rotation is rejected
        if not existing.is_signer_in_lineage(old_signer):
            raise SignerNotInLineageError(old_signer.display_name)
        if existing.certificates[-1] != old_signer.certificate:
            raise LineageMismatchError(
                f"{old_signer.display_name} is not the most recent signer in the lineage"
            )
        existing.update_signer_capabilities(old_signer, old_capabilities)
        lineage = existing.spawn_descendant(old_signer, new_signer, new_capabilities)
        logger.info(
            "Extended lineage to %d signer(s) with %s",
            len(lineage),
            new_signer.display_name,
        )
        return lineage

    def update_capabilities(
        self,
        lineage: SigningCertificateLineage,
        signer: LineageSigner,
        capabilities: SignerCapabilities,
    ) -> CapabilityUpdate:
        """Apply the configured flags of *capabilities* to *signer* in place.

        The result compares the signer's capabilities before and after the
        update, so flags the caller set to their current value do not count
        as a change.

        Raises
        ------
        SignerNotInLineageError
            If *signer* is not in *lineage*.
        """
        before = lineage.get_signer_capabilities(signer)
        lineage.update_signer_capabilities(signer, capabilities)
        after = lineage.get_signer_capabilities(signer)
        changed = before != after
        if changed:
            logger.info("Updated signer capabilities for %s", signer.display_name)
        else:
            logger.debug("Signer capabilities for %s unchanged", signer.display_name)
        return CapabilityUpdate(changed=changed, before=before, after=after)
