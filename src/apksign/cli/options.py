"""Token stream over a command's raw arguments.

Options are written ``--name``, ``-name`` or ``--name=value``. The first
token that does not start with ``-`` ends the options, as does ``--``
(which is consumed). Values are read from the ``=`` suffix or from the next
token::

    parser = OptionsParser(["--ks", "release.p12", "--v2-signing-enabled", "false", "app.apk"])
    name = parser.next_option()
    while name is not None:
        ...
        name = parser.next_option()
    parser.get_remaining_params()  # ["app.apk"]
"""
from __future__ import annotations

from typing import Sequence

from apksign.errors import OptionsError

END_OF_OPTIONS = "--"


class OptionsParser:
    """Cursor over command-line tokens.

    Parameters
    ----------
    params:
        The argument tokens following the command name.
    """

    def __init__(self, params: Sequence[str]) -> None:
        self._params = list(params)
        self._index = 0
        self._last_option_index = 0
        self._last_option_original_form: str | None = None
        self._last_option_value: str | None = None
        self._put_back = False

    def next_option(self) -> str | None:
        """Return the name of the next option, or None when options end."""
        self._put_back = False
        if self._index >= len(self._params):
            return None
        param = self._params[self._index]
        if not param.startswith("-"):
            return None
        self._last_option_index = self._index
        self._index += 1
        self._last_option_original_form = param
        self._last_option_value = None
        if param.startswith("--"):
            if param == END_OF_OPTIONS:
                return None
            name, sep, value = param[2:].partition("=")
            if sep:
                self._last_option_value = value
                self._last_option_original_form = "--" + name
            return name
        return param[1:]

    def put_option(self) -> None:
        """Push the last option back so the next :meth:`next_option` returns it again.

        Raises
        ------
        RuntimeError
            If an option was already pushed back.
        """
        if self._put_back:
            raise RuntimeError("Cannot put back more than one option")
        self._index = self._last_option_index
        self._last_option_value = None
        self._put_back = True

    @property
    def option_original_form(self) -> str | None:
        """The last option as written, without any ``=value`` suffix."""
        return self._last_option_original_form

    def get_required_value(self, description: str) -> str:
        """Return the value of the last option.

        Raises
        ------
        OptionsError
            If no value follows the option.
        """
        if self._last_option_value is not None:
            value = self._last_option_value
            self._last_option_value = None
            return value
        if self._index >= len(self._params) or self._params[self._index] == END_OF_OPTIONS:
            raise OptionsError(f"{description} missing after {self._last_option_original_form}")
        value = self._params[self._index]
        self._index += 1
        return value

    def get_required_int_value(self, description: str) -> int:
        """Return the value of the last option as a decimal integer."""
        value = self.get_required_value(description)
        try:
            return int(value, 10)
        except ValueError:
            raise OptionsError(
                f"{description} ({self._last_option_original_form}) must be a decimal number:"
                f" {value}"
            ) from None

    def get_optional_boolean_value(self, default: bool) -> bool:
        """Return the option's boolean value, or *default* when none is given.

        A following ``true`` or ``false`` token is consumed as the value.
        """
        if self._last_option_value is not None:
            value = self._last_option_value
            self._last_option_value = None
            if value == "true":
                return True
            if value == "false":
                return False
            raise OptionsError(
                f"Unsupported value for {self._last_option_original_form}: {value}."
                " Only true or false supported."
            )
        if self._index < len(self._params):
            value = self._params[self._index]
            if value == "true":
                self._index += 1
                return True
            if value == "false":
                self._index += 1
                return False
        return default

    def get_remaining_params(self) -> list[str]:
        """Return the tokens after the options.

        Raises
        ------
        OptionsError
            If an option was left unprocessed.
        """
        if self._index >= len(self._params):
            return []
        param = self._params[self._index]
        if param.startswith("-") and param != END_OF_OPTIONS and not self._after_end_marker():
            raise OptionsError(f"Unprocessed option: {param}")
        return self._params[self._index:]

    def _after_end_marker(self) -> bool:
        return self._index > 0 and self._params[self._index - 1] == END_OF_OPTIONS
