"""Signing certificate lineage: the proof-of-rotation record.

A lineage is an ordered list of signing certificates, oldest first. Every
node after the first holds a signature, made with the previous signer's
key, over the new certificate and the algorithm used. A past signer's
capability flags say what the platform still lets it do.

File layout (all integers little-endian ``uint32``)::

    magic 0x3eff39d1 | version 1 | len-prefixed lineage

    lineage: version 1 | len-prefixed node ...
    node:    len-prefixed signed data | flags | signature algorithm | len-prefixed signature
    signed data: len-prefixed DER certificate | parent signature algorithm
"""
from __future__ import annotations

import dataclasses
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from apksign.capabilities import SignerCapabilities
from apksign.certificates.pkcs8 import PrivateKey
from apksign.errors import (
    LineageError,
    LineageFormatError,
    LineageMismatchError,
    SignerNotInLineageError,
)
from apksign.lineage.algorithms import (
    create_signature,
    suggest_signature_algorithm,
    verify_signature,
)

logger = logging.getLogger(__name__)

MAGIC = 0x3EFF39D1
FILE_VERSION = 1
LINEAGE_VERSION = 1
# Android P, the first platform to support key rotation.
DEFAULT_MIN_SDK_VERSION = 28

_U32 = struct.Struct("<I")


@dataclass(frozen=True)
class LineageSigner:
    """A signer taking part in a rotation.

    Parameters
    ----------
    private_key:
        The signer's private key. Only used when the signer is a parent.
    certificate:
        The signer's signing certificate.
    name:
        Display name used in error messages.
    """

    private_key: PrivateKey
    certificate: x509.Certificate
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.certificate.subject.rfc4514_string()


@dataclass(frozen=True)
class SigningCertificateNode:
    """One certificate in the lineage.

    Parameters
    ----------
    certificate:
        The signing certificate.
    parent_signature_algorithm:
        Algorithm ID the previous signer used to sign this node. 0 for the
        first node.
    signature_algorithm:
        Algorithm ID this signer used to sign the next node. 0 for the last.
    signature:
        The previous signer's signature over :attr:`signed_data`.
    flags:
        Capability flags of this signer.
    """

    certificate: x509.Certificate
    parent_signature_algorithm: int = 0
    signature_algorithm: int = 0
    signature: bytes = b""
    flags: int = 0

    @property
    def capabilities(self) -> SignerCapabilities:
        return SignerCapabilities.from_flags(self.flags)

    @property
    def signed_data(self) -> bytes:
        return encode_signed_data(self.certificate, self.parent_signature_algorithm)

    def encode(self) -> bytes:
        return (
            _length_prefixed(self.signed_data)
            + _U32.pack(self.flags)
            + _U32.pack(self.signature_algorithm)
            + _length_prefixed(self.signature)
        )


def encode_signed_data(certificate: x509.Certificate, parent_signature_algorithm: int) -> bytes:
    """Encode the bytes a parent signs when it rotates to *certificate*."""
    return _length_prefixed(_der(certificate)) + _U32.pack(parent_signature_algorithm)


SignerRef = Union[LineageSigner, x509.Certificate]


class SigningCertificateLineage:
    """An ordered, append-only chain of signing certificates.

    Parameters
    ----------
    nodes:
        The nodes, oldest signer first.
    min_sdk_version:
        Lowest platform version the rotation applies to. It is not written
        to the lineage file.
    """

    def __init__(
        self,
        nodes: Iterable[SigningCertificateNode],
        min_sdk_version: int = DEFAULT_MIN_SDK_VERSION,
    ) -> None:
        self._nodes: list[SigningCertificateNode] = list(nodes)
        self._min_sdk_version = min_sdk_version

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        parent: LineageSigner,
        child: LineageSigner,
        min_sdk_version: int = DEFAULT_MIN_SDK_VERSION,
        parent_capabilities: SignerCapabilities | None = None,
        child_capabilities: SignerCapabilities | None = None,
    ) -> "SigningCertificateLineage":
        """Build a new lineage rotating from *parent* to *child*."""
        parent_capabilities = parent_capabilities or SignerCapabilities()
        first = SigningCertificateNode(
            certificate=parent.certificate, flags=parent_capabilities.flags
        )
        lineage = cls([first], min_sdk_version)
        return lineage.spawn_descendant(parent, child, child_capabilities)

    def spawn_descendant(
        self,
        parent: LineageSigner,
        child: LineageSigner,
        child_capabilities: SignerCapabilities | None = None,
    ) -> "SigningCertificateLineage":
        """Return a new lineage with *child* appended, signed by *parent*.

        Raises
        ------
        LineageMismatchError
            If *parent* is not the most recent signer of this lineage.
        """
        if not self._nodes:
            raise LineageError("Cannot spawn a descendant of an empty lineage")
        tail = self._nodes[-1]
        if _der(tail.certificate) != _der(parent.certificate):
            raise LineageMismatchError(
                f"{parent.display_name} is not the most recent signer in the lineage"
            )
        algorithm = suggest_signature_algorithm(parent.certificate.public_key())  # type: ignore[arg-type]
        signed_data = encode_signed_data(child.certificate, algorithm)
        signature = create_signature(parent.private_key, algorithm, signed_data)

        capabilities = child_capabilities or SignerCapabilities()
        nodes = self._nodes[:-1]
        nodes.append(dataclasses.replace(tail, signature_algorithm=int(algorithm)))
        nodes.append(
            SigningCertificateNode(
                certificate=child.certificate,
                parent_signature_algorithm=int(algorithm),
                signature=signature,
                flags=capabilities.flags,
            )
        )
        logger.debug(
            "Spawned lineage node %d for %s (algorithm %#06x)",
            len(nodes) - 1,
            child.display_name,
            algorithm,
        )
        return SigningCertificateLineage(nodes, self._min_sdk_version)

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def get_signer_capabilities(self, signer: SignerRef) -> SignerCapabilities:
        """Return the capabilities of *signer*.

        Raises
        ------
        SignerNotInLineageError
            If *signer*'s certificate is not in this lineage.
        """
        return self._nodes[self._index_of(signer)].capabilities

    def update_signer_capabilities(
        self,
        signer: SignerRef,
        capabilities: SignerCapabilities,
    ) -> None:
        """Apply the configured flags of *capabilities* to *signer*'s node.

        Flags the caller did not set keep their current value.
        """
        index = self._index_of(signer)
        node = self._nodes[index]
        updated = capabilities.merged_into(node.capabilities)
        self._nodes[index] = dataclasses.replace(node, flags=updated.flags)

    def is_signer_in_lineage(self, signer: SignerRef) -> bool:
        try:
            self._index_of(signer)
        except SignerNotInLineageError:
            return False
        return True

    def _index_of(self, signer: SignerRef) -> int:
        certificate = signer.certificate if isinstance(signer, LineageSigner) else signer
        encoded = _der(certificate)
        for index, node in enumerate(self._nodes):
            if _der(node.certificate) == encoded:
                return index
        if isinstance(signer, LineageSigner):
            raise SignerNotInLineageError(signer.display_name)
        raise SignerNotInLineageError(certificate.subject.rfc4514_string())

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def nodes(self) -> tuple[SigningCertificateNode, ...]:
        return tuple(self._nodes)

    @property
    def certificates(self) -> list[x509.Certificate]:
        """Every certificate in the lineage, oldest first."""
        return [node.certificate for node in self._nodes]

    @property
    def rotation_count(self) -> int:
        return len(self._nodes) - 1

    @property
    def min_sdk_version(self) -> int:
        return self._min_sdk_version

    def __len__(self) -> int:
        return len(self._nodes)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SigningCertificateLineage):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __repr__(self) -> str:
        return (
            f"SigningCertificateLineage(nodes={len(self._nodes)}, "
            f"min_sdk_version={self._min_sdk_version})"
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self) -> None:
        """Check every rotation signature and the node invariants.

        Raises
        ------
        LineageFormatError
            If any node is inconsistent or a signature does not verify.
        """
        seen: set[bytes] = set()
        previous: SigningCertificateNode | None = None
        for index, node in enumerate(self._nodes):
            encoded = _der(node.certificate)
            if encoded in seen:
                raise LineageFormatError(f"Duplicate certificate in lineage at node {index}")
            if previous is None:
                if node.parent_signature_algorithm != 0 or node.signature:
                    raise LineageFormatError("First lineage node must not be signed")
            else:
                if node.parent_signature_algorithm != previous.signature_algorithm:
                    raise LineageFormatError(
                        f"Signature algorithm mismatch for certificate #{index}"
                    )
                try:
                    valid = verify_signature(
                        previous.certificate.public_key(),  # type: ignore[arg-type]
                        node.parent_signature_algorithm,
                        node.signature,
                        node.signed_data,
                    )
                except LineageError as exc:
                    raise LineageFormatError(str(exc)) from exc
                if not valid:
                    raise LineageFormatError(f"Invalid signature on certificate #{index}")
            seen.add(encoded)
            previous = node
        if previous is not None and previous.signature_algorithm != 0:
            raise LineageFormatError("Last lineage node must not carry a signature algorithm")

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode_lineage(self) -> bytes:
        """Encode the nodes as the proof-of-rotation structure."""
        body = b"".join(_length_prefixed(node.encode()) for node in self._nodes)
        return _U32.pack(LINEAGE_VERSION) + body

    def to_bytes(self) -> bytes:
        """Encode as a lineage file."""
        return _U32.pack(MAGIC) + _U32.pack(FILE_VERSION) + _length_prefixed(self.encode_lineage())

    @classmethod
    def from_bytes(cls, data: bytes) -> "SigningCertificateLineage":
        """Decode and verify a lineage file.

        Raises
        ------
        LineageFormatError
            If *data* is not a valid lineage file.
        """
        reader = _Reader(data)
        if reader.u32() != MAGIC:
            raise LineageFormatError("Improper lineage file: magic header mismatch")
        version = reader.u32()
        if version != FILE_VERSION:
            raise LineageFormatError(f"Unsupported lineage file version: {version}")
        lineage = cls.decode_lineage(reader.length_prefixed())
        reader.expect_end()
        return lineage

    @classmethod
    def decode_lineage(cls, data: bytes) -> "SigningCertificateLineage":
        reader = _Reader(data)
        version = reader.u32()
        if version != LINEAGE_VERSION:
            raise LineageFormatError(f"Unsupported lineage version: {version}")
        nodes = []
        while not reader.at_end():
            nodes.append(_decode_node(reader.length_prefixed()))
        if not nodes:
            raise LineageFormatError("Lineage contains no certificates")
        lineage = cls(nodes, DEFAULT_MIN_SDK_VERSION)
        lineage.verify()
        return lineage

    @classmethod
    def read_from_file(cls, path: str | Path) -> "SigningCertificateLineage":
        try:
            data = Path(path).read_bytes()
        except OSError as exc:
            raise LineageError(
                f"Failed to read lineage file {path}: {exc.strerror or exc}"
            ) from exc
        lineage = cls.from_bytes(data)
        logger.debug("Read lineage with %d signer(s) from %s", len(lineage), path)
        return lineage

    def write_to_file(self, path: str | Path) -> None:
        try:
            Path(path).write_bytes(self.to_bytes())
        except OSError as exc:
            raise LineageError(
                f"Failed to write lineage file {path}: {exc.strerror or exc}"
            ) from exc
        logger.debug("Wrote lineage with %d signer(s) to %s", len(self), path)


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _der(certificate: x509.Certificate) -> bytes:
    return certificate.public_bytes(serialization.Encoding.DER)


def _length_prefixed(data: bytes) -> bytes:
    return _U32.pack(len(data)) + data


def _decode_node(data: bytes) -> SigningCertificateNode:
    reader = _Reader(data)
    signed = _Reader(reader.length_prefixed())
    certificate_der = signed.length_prefixed()
    parent_algorithm = signed.u32()
    signed.expect_end()
    flags = reader.u32()
    algorithm = reader.u32()
    signature = reader.length_prefixed()
    reader.expect_end()
    try:
        certificate = x509.load_der_x509_certificate(certificate_der)
    except ValueError as exc:
        raise LineageFormatError(f"Invalid certificate in lineage: {exc}") from exc
    return SigningCertificateNode(
        certificate=certificate,
        parent_signature_algorithm=parent_algorithm,
        signature_algorithm=algorithm,
        signature=signature,
        flags=flags,
    )


class _Reader:
    """Cursor over little-endian length-prefixed fields."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._offset = 0

    def u32(self) -> int:
        (value,) = _U32.unpack(self._take(_U32.size))
        return value

    def length_prefixed(self) -> bytes:
        return self._take(self.u32())

    def at_end(self) -> bool:
        return self._offset >= len(self._data)

    def expect_end(self) -> None:
        if not self.at_end():
            raise LineageFormatError(
                f"{len(self._data) - self._offset} unexpected trailing byte(s) in lineage"
            )

    def _take(self, size: int) -> bytes:
        end = self._offset + size
        if end > len(self._data):
            raise LineageFormatError("Truncated lineage data")
        chunk = self._data[self._offset:end]
        self._offset = end
        return chunk
