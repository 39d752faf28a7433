"""Password sources and candidate password expansion.

A password spec names where a password comes from. Each line the source
yields becomes one candidate per configured character encoding, so a
keystore written by a tool that encoded its password differently can still
be opened::

    with PasswordRetriever() as retriever:
        candidates = retriever.get_passwords("file:pw.txt", "Keystore password for signer #1")

Supported specs
---------------
``stdin``
    Prompt with the label and read one line from standard input.
``file:<path>``
    Every line of the file is one candidate, in file order.
``pass:<password>``
    The literal password.
``env:<NAME>``
    The value of the named environment variable.

Candidates handed out by a retriever are zeroed when it is closed.
"""
from __future__ import annotations

import codecs
import locale
import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Sequence

import click

from apksign.errors import ConfigurationError, UnsupportedEncodingError

logger = logging.getLogger(__name__)

SPEC_STDIN = "stdin"
_FILE_PREFIX = "file:"
_PASS_PREFIX = "pass:"
_ENV_PREFIX = "env:"


def native_encoding() -> str:
    """Return the normalized name of the platform's preferred encoding."""
    return codecs.lookup(locale.getpreferredencoding(False)).name


def get_charset_by_name(name: str) -> str:
    """Resolve an encoding name to its canonical codec name.

    Raises
    ------
    UnsupportedEncodingError
        If Python has no codec registered under *name*.
    """
    try:
        return codecs.lookup(name).name
    except LookupError:
        raise UnsupportedEncodingError(name) from None


@dataclass
class CandidatePassword:
    """One (line, encoding) pairing to try.

    Parameters
    ----------
    text:
        The password as read from its source.
    encoding:
        Name of the encoding used to produce :attr:`value`.
    """

    text: str
    encoding: str
    _buffer: bytearray = field(default_factory=bytearray, repr=False)

    @classmethod
    def encode(cls, text: str, encoding: str) -> "CandidatePassword":
        return cls(text=text, encoding=encoding, _buffer=bytearray(text.encode(encoding)))

    @property
    def value(self) -> bytes:
        """The encoded password bytes."""
        return bytes(self._buffer)

    def clear(self) -> None:
        """Overwrite the encoded password and drop the text."""
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer.clear()
        self.text = ""

    def __repr__(self) -> str:
        return f"CandidatePassword(encoding={self.encoding!r})"


class PasswordRetriever:
    """Resolves password specs into ordered candidate passwords.

    Use as a context manager; closing it clears every candidate it returned.

    Parameters
    ----------
    stdin:
        Stream to read ``stdin`` passwords from. Defaults to ``sys.stdin``.
    """

    def __init__(self, stdin: IO[str] | None = None) -> None:
        self._stdin = stdin
        self._issued: list[CandidatePassword] = []
        self._closed = False

    # ------------------------------------------------------------------
    # Context management
    # ------------------------------------------------------------------

    def __enter__(self) -> "PasswordRetriever":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Clear all issued candidates. Further use raises RuntimeError."""
        for candidate in self._issued:
            candidate.clear()
        self._issued.clear()
        self._stdin = None
        self._closed = True

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_passwords(
        self,
        spec: str,
        label: str,
        extra_encodings: Sequence[str] = (),
    ) -> tuple[CandidatePassword, ...]:
        """Return the candidate passwords for *spec*.

        Parameters
        ----------
        spec:
            Password spec string (see module docstring).
        label:
            Human-readable description shown when prompting.
        extra_encodings:
            Encodings to try after the native one, in order.

        Returns
        -------
        tuple[CandidatePassword, ...]
            One candidate per (line, encoding), lines in source order and the
            native encoding first within each line. A pair is left out when
            its encoding cannot represent the line. Empty when the source
            yielded no lines.

        Raises
        ------
        ConfigurationError
            If the spec is not recognized or its source cannot be read.
        UnsupportedEncodingError
            If an extra encoding is unknown.
        """
        if self._closed:
            raise RuntimeError("Password retriever is closed")

        encodings = [native_encoding()]
        encodings.extend(get_charset_by_name(name) for name in extra_encodings)

        lines = self._read_lines(spec, label)
        encoded: list[CandidatePassword] = []
        for line in lines:
            for encoding in encodings:
                try:
                    encoded.append(CandidatePassword.encode(line, encoding))
                except UnicodeEncodeError:
                    logger.debug(
                        "Skipping %s candidate for %s: not representable", encoding, label
                    )
        candidates = tuple(encoded)
        self._issued.extend(candidates)
        logger.debug(
            "Resolved %d candidate password(s) for %s from %s",
            len(candidates),
            label,
            _describe_spec(spec),
        )
        return candidates

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_lines(self, spec: str, label: str) -> list[str]:
        if spec == SPEC_STDIN:
            line = self._read_stdin_line(label)
            return [] if line is None else [line]
        if spec.startswith(_PASS_PREFIX):
            return [spec[len(_PASS_PREFIX):]]
        if spec.startswith(_ENV_PREFIX):
            name = spec[len(_ENV_PREFIX):]
            value = os.environ.get(name)
            if value is None:
                raise ConfigurationError(f"Environment variable {name} not set")
            return [value]
        if spec.startswith(_FILE_PREFIX):
            path = Path(spec[len(_FILE_PREFIX):])
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise ConfigurationError(f"Failed to read password file {path}: {exc}") from exc
            try:
                text = data.decode(native_encoding())
            except UnicodeDecodeError as exc:
                raise ConfigurationError(
                    f"Failed to read password file {path}: not valid {native_encoding()}"
                ) from exc
            return text.splitlines()
        raise ConfigurationError(f"Unsupported password spec for {label}: {_describe_spec(spec)}")

    def _read_stdin_line(self, label: str) -> str | None:
        stream = self._stdin if self._stdin is not None else sys.stdin
        if stream.isatty():
            return click.prompt(label, hide_input=True, default="", show_default=False, err=True)
        click.echo(f"{label}: ", err=True, nl=False)
        line = stream.readline()
        if not line:
            return None
        return line.rstrip("\r\n")


def _describe_spec(spec: str) -> str:
    """Return a loggable form of *spec* with any literal password removed."""
    if spec.startswith(_PASS_PREFIX):
        return "pass:<hidden>"
    return spec
