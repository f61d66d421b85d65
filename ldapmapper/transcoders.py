"""
Value transcoders.

A transcoder converts a single typed Python value into its LDAP wire form and
back.  Text attributes travel as ``str`` and binary attributes as ``bytes``;
the conversion to UTF-8 bytes for python-ldap happens later, in
:py:meth:`ldapmapper.entries.LdapAttribute.to_db`.

Transcoders are stateless and may be shared by any number of mappers.
"""

import datetime
import uuid
from collections.abc import Callable
from typing import Any

import pytz
from django.core.exceptions import ValidationError
from django.utils.translation import gettext_lazy as _

from .typing import WireValue


class TranscodingError(ValidationError):
    """
    Raised when a value cannot be encoded to, or decoded from, its LDAP wire
    form.  Usually this means the transcoder does not match the attribute,
    e.g. a text transcoder used on a binary attribute.
    """


class ValueTranscoder:
    """
    Base class for transcoders.

    Subclasses implement :py:meth:`encode` and :py:meth:`decode`.
    """

    #: Whether wire values produced by this transcoder are ``bytes``.
    binary: bool = False

    #: Error messages for transcoding failures.
    default_error_messages: dict[str, str] = {  # type: ignore[assignment]  # noqa: RUF012
        "invalid": _("'%(value)s' is not a valid value for %(transcoder)s."),  # type: ignore[dict-item]
        "invalid_text": _("LDAP value %(value)r is not valid UTF-8 text."),  # type: ignore[dict-item]
        "invalid_binary": _("LDAP value %(value)r is text, but binary data was expected."),  # type: ignore[dict-item]
    }

    def __init__(self) -> None:
        messages: dict[str, str] = {}
        for c in reversed(self.__class__.__mro__):
            messages.update(getattr(c, "default_error_messages", {}))
        self.error_messages = messages

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"

    def error(self, code: str, value: Any) -> TranscodingError:
        """
        Build a :py:class:`TranscodingError` for ``value``.

        Args:
            code: The key into :py:attr:`error_messages`.
            value: The offending value.

        Returns:
            The exception, ready to be raised.

        """
        return TranscodingError(
            self.error_messages[code],
            code=code,
            params={"value": value, "transcoder": self.__class__.__name__},
        )

    def to_text(self, value: WireValue) -> str:
        """
        Return ``value`` as ``str``, decoding UTF-8 bytes if necessary.

        Raises:
            TranscodingError: ``value`` is bytes but not valid UTF-8.

        """
        if isinstance(value, str):
            return value
        try:
            return bytes(value).decode("utf-8")
        except (TypeError, UnicodeDecodeError) as e:
            raise self.error("invalid_text", value) from e

    def encode(self, value: Any) -> WireValue:
        """
        Convert a Python value to its wire form.

        Args:
            value: The Python value.  Never ``None``.

        Returns:
            The wire value.

        """
        raise NotImplementedError

    def decode(self, value: WireValue) -> Any:
        """
        Convert a wire value to its Python form.

        Args:
            value: The wire value, as stored on an
                :py:class:`~ldapmapper.entries.LdapAttribute`.

        Returns:
            The Python value.

        """
        raise NotImplementedError


class StringTranscoder(ValueTranscoder):
    """Plain text; Python ``str`` on both sides."""

    def encode(self, value: Any) -> str:
        if isinstance(value, bytes):
            return self.to_text(value)
        return str(value)

    def decode(self, value: WireValue) -> str:
        return self.to_text(value)


class IntegerTranscoder(ValueTranscoder):
    """Integers stored as their decimal string."""

    def encode(self, value: Any) -> str:
        try:
            return str(int(value))
        except (TypeError, ValueError) as e:
            raise self.error("invalid", value) from e

    def decode(self, value: WireValue) -> int:
        text = self.to_text(value)
        try:
            return int(text)
        except ValueError as e:
            raise self.error("invalid", text) from e


class BooleanTranscoder(ValueTranscoder):
    """
    Booleans stored as the strings ``true`` and ``false``.

    Decoding is case-insensitive, so ``TRUE`` in LDAP still decodes to
    ``True``.
    """

    #: The string value used to represent True in LDAP.
    LDAP_TRUE: str = "true"
    #: The string value used to represent False in LDAP.
    LDAP_FALSE: str = "false"

    def encode(self, value: Any) -> str:
        if value in (True, False):
            return self.LDAP_TRUE if value else self.LDAP_FALSE
        raise self.error("invalid", value)

    def decode(self, value: WireValue) -> bool:
        text = self.to_text(value).strip().lower()
        if text == self.LDAP_TRUE.lower():
            return True
        if text == self.LDAP_FALSE.lower():
            return False
        raise self.error("invalid", text)


class AllCapsBooleanTranscoder(BooleanTranscoder):
    """Booleans stored as ``TRUE`` and ``FALSE``, as many schemas expect."""

    #: The uppercase string value used to represent True in LDAP.
    LDAP_TRUE: str = "TRUE"
    #: The uppercase string value used to represent False in LDAP.
    LDAP_FALSE: str = "FALSE"


class GeneralizedTimeTranscoder(ValueTranscoder):
    """
    Timezone aware datetimes stored as LDAP generalized time.

    Values are always written in UTC.  Naive datetimes are assumed to be UTC
    already.  Decoded values are aware and in UTC.
    """

    #: List of supported LDAP datetime formats.
    LDAP_DATETIME_FORMATS: list[str] = ["%Y%m%d%H%M%SZ", "%Y%m%d%H%M%S+0000"]  # noqa: RUF012
    #: The LDAP datetime format for output.
    LDAP_DATETIME_FORMAT: str = "%Y%m%d%H%M%SZ"

    default_error_messages: dict[str, str] = {  # type: ignore[assignment]  # noqa: RUF012
        "invalid_ldap_datetime": _(
            "LDAP datetime '%(value)s' value is not in a supported format"
        ),  # type: ignore[dict-item]
    }

    def encode(self, value: Any) -> str:
        if not isinstance(value, datetime.datetime):
            raise self.error("invalid", value)
        if value.tzinfo is None:
            value = pytz.utc.localize(value)
        return value.astimezone(pytz.utc).strftime(self.LDAP_DATETIME_FORMAT)

    def decode(self, value: WireValue) -> datetime.datetime:
        dt_str = self.to_text(value)
        dt: datetime.datetime | None = None
        for fmt in self.LDAP_DATETIME_FORMATS:
            try:
                dt = datetime.datetime.strptime(dt_str, fmt)  # noqa: DTZ007
            except ValueError:  # noqa: PERF203
                pass
            else:
                break
        if dt is None:
            raise self.error("invalid_ldap_datetime", dt_str)
        return pytz.utc.localize(dt)


class BinaryTranscoder(ValueTranscoder):
    """
    Opaque binary data (photos, certificates, ...).  Python ``bytes`` on
    both sides.
    """

    binary: bool = True

    def encode(self, value: Any) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        raise self.error("invalid", value)

    def decode(self, value: WireValue) -> bytes:
        if isinstance(value, (bytes, bytearray)):
            return bytes(value)
        raise self.error("invalid_binary", value)


class UUIDTranscoder(ValueTranscoder):
    """:py:class:`uuid.UUID` stored in its canonical string form."""

    def encode(self, value: Any) -> str:
        if isinstance(value, uuid.UUID):
            return str(value)
        try:
            return str(uuid.UUID(str(value)))
        except ValueError as e:
            raise self.error("invalid", value) from e

    def decode(self, value: WireValue) -> uuid.UUID:
        text = self.to_text(value)
        try:
            return uuid.UUID(text)
        except ValueError as e:
            raise self.error("invalid", text) from e


class FunctionTranscoder(ValueTranscoder):
    """
    Wrap a pair of plain functions as a transcoder.

    Example:
        .. code-block:: python

            upper = FunctionTranscoder(str.upper, str.lower)

    Args:
        encoder: Converts a Python value to its wire form.
        decoder: Converts a wire value to its Python form.

    Keyword Args:
        binary: Whether ``encoder`` produces ``bytes``.

    """

    def __init__(
        self,
        encoder: Callable[[Any], WireValue],
        decoder: Callable[[WireValue], Any],
        binary: bool = False,
    ) -> None:
        super().__init__()
        self.encoder = encoder
        self.decoder = decoder
        self.binary = binary

    def encode(self, value: Any) -> WireValue:
        return self.encoder(value)

    def decode(self, value: WireValue) -> Any:
        return self.decoder(value)
