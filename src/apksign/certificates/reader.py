"""Certificate file decoding.

Certificate files may hold a PEM bundle, one or more concatenated DER
certificates, or a PKCS #7 certificate bag in either encoding. The
certificates are returned in file order, which is the chain order (leaf
first).
"""
from __future__ import annotations

from pathlib import Path

from asn1crypto import parser as asn1_parser
from cryptography import x509
from cryptography.hazmat.primitives.serialization import pkcs7

from apksign.errors import KeyParseError

_PEM_MARKER = b"-----BEGIN"
_PKCS7_PEM_MARKER = b"-----BEGIN PKCS7-----"


def load_certificates(data: bytes) -> list[x509.Certificate]:
    """Decode every certificate in *data*.

    Returns
    -------
    list[x509.Certificate]
        Certificates in encounter order. Empty if *data* is empty.

    Raises
    ------
    KeyParseError
        If *data* is not a recognizable certificate encoding.
    """
    if not data.strip():
        return []
    try:
        if _PKCS7_PEM_MARKER in data:
            return list(pkcs7.load_pem_pkcs7_certificates(data))
        if _PEM_MARKER in data:
            return list(x509.load_pem_x509_certificates(data))
        return _load_der_certificates(data)
    except ValueError as exc:
        raise KeyParseError(f"Failed to decode certificates: {exc}") from exc


def read_certificate_file(path: str | Path) -> list[x509.Certificate]:
    """Read and decode the certificates stored at *path*."""
    return load_certificates(Path(path).read_bytes())


def _load_der_certificates(data: bytes) -> list[x509.Certificate]:
    certs: list[x509.Certificate] = []
    remaining = data
    while remaining:
        _, _, _, header, contents, trailer = asn1_parser.parse(remaining, strict=False)
        length = len(header) + len(contents) + len(trailer)
        chunk, remaining = remaining[:length], remaining[length:]
        try:
            certs.append(x509.load_der_x509_certificate(chunk))
        except ValueError:
            if certs:
                raise
            # A single DER PKCS #7 bag rather than a certificate.
            return list(pkcs7.load_der_pkcs7_certificates(data))
    return certs


__all__ = ["load_certificates", "read_certificate_file"]
