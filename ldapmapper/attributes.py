"""
Mapped attribute declarations.

Each class here describes how one LDAP attribute relates to one attribute of
a domain object: which LDAP name it has, which
:py:class:`~ldapmapper.transcoders.ValueTranscoder` converts its values,
whether it is binary or multi-valued, and whether it is written back to LDAP.
They are declared on an :py:class:`~ldapmapper.mappers.EntryMapper` much like
fields on a Django model.
"""

from functools import total_ordering
from typing import TYPE_CHECKING, Any, cast

from . import modlist
from .entries import LdapEntry, Modification
from .transcoders import (
    AllCapsBooleanTranscoder,
    BinaryTranscoder,
    BooleanTranscoder,
    GeneralizedTimeTranscoder,
    IntegerTranscoder,
    StringTranscoder,
    UUIDTranscoder,
    ValueTranscoder,
)

if TYPE_CHECKING:
    from .mappers import EntryMapper


#: Marker for "no default given".
NOT_PROVIDED = object()


@total_ordering
class Attribute:
    """
    Base class for mapped attributes.

    Keyword Args:
        ldap_attribute: The LDAP attribute name.  Defaults to the name the
            attribute is declared under on the mapper.
        transcoder: Converts values.  Defaults to an instance of
            :py:attr:`transcoder_class`.
        field_name: The attribute name on the domain object.  Defaults to the
            name the attribute is declared under on the mapper.
        binary: Whether LDAP values are bytes.  Defaults to the transcoder's
            :py:attr:`~ldapmapper.transcoders.ValueTranscoder.binary`.
        multivalued: Whether the domain object holds a list of values.
        editable: If ``False``, the attribute is read from LDAP but never
            written.
        default: The value to put on the domain object when LDAP has none.
            May be a callable.

    """

    #: The transcoder used when none is passed in.
    transcoder_class: type[ValueTranscoder] = StringTranscoder
    #: Whether the domain object holds a list of values.
    multivalued: bool = False
    #: Counter for declaration order, used for sorting attributes.
    creation_counter: int = 0

    def __init__(  # noqa: PLR0913
        self,
        ldap_attribute: str | None = None,
        transcoder: ValueTranscoder | None = None,
        field_name: str | None = None,
        binary: bool | None = None,
        multivalued: bool | None = None,
        editable: bool = True,
        default: Any = NOT_PROVIDED,
    ) -> None:
        #: Set by :py:meth:`contribute_to_class`.
        self.name: str | None = None
        self.db_column = ldap_attribute
        self.transcoder = transcoder or self.transcoder_class()
        self.field_name = field_name
        self.binary = self.transcoder.binary if binary is None else binary
        if multivalued is not None:
            self.multivalued = multivalued
        self.editable = editable
        self.default = default
        self.mapper: type[EntryMapper] | None = None

        self.creation_counter = Attribute.creation_counter
        Attribute.creation_counter += 1

    def __repr__(self) -> str:
        path = f"{self.__class__.__module__}.{self.__class__.__qualname__}"
        if self.name is not None:
            return f"<{path}: {self.name}>"
        return f"<{path}>"

    def __lt__(self, other: "Attribute") -> bool:
        if isinstance(other, Attribute):
            return self.creation_counter < other.creation_counter
        return NotImplemented

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Attribute):
            return self.creation_counter == other.creation_counter
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.creation_counter)

    @property
    def ldap_attribute(self) -> str:
        """
        The LDAP attribute name (``ldap_attribute`` if set, otherwise the
        declared name).
        """
        return cast("str", self.db_column or self.name)

    @property
    def attname(self) -> str:
        """
        The attribute name on the domain object.
        """
        return cast("str", self.field_name or self.name)

    def contribute_to_class(self, cls: type["EntryMapper"], name: str) -> None:
        """
        Register the attribute with the mapper class it is declared on.

        Args:
            cls: The mapper class.
            name: The name the attribute is declared under.

        """
        self.name = name
        self.mapper = cls
        cls._meta.add_attribute(self)  # type: ignore[union-attr]

    def get_default(self) -> Any:
        """
        Return the value to put on the domain object when LDAP has none.
        """
        if self.default is NOT_PROVIDED:
            return [] if self.multivalued else None
        if callable(self.default):
            return self.default()
        return self.default

    def value_from_object(self, obj: Any) -> list[Any]:
        """
        Return the desired LDAP values held by ``obj``, always as a list.
        """
        value = getattr(obj, self.attname, None)
        if value is None:
            return []
        if self.multivalued and not isinstance(value, (str, bytes, bytearray)):
            return list(value)
        return [value]

    def value_to_object(self, obj: Any, values: list[Any]) -> None:
        """
        Store decoded LDAP ``values`` on ``obj``.
        """
        if not values:
            value = self.get_default()
        elif self.multivalued:
            value = values
        else:
            value = values[0]
        setattr(obj, self.attname, value)

    def sync(self, entry: LdapEntry, obj: Any) -> Modification | None:
        """
        Bring this attribute on ``entry`` in line with ``obj``.

        Returns:
            The modification made, or ``None``.

        """
        return modlist.set_values(
            entry,
            self.ldap_attribute,
            self.value_from_object(obj),
            is_binary=self.binary,
            transcoder=self.transcoder,
        )

    def load(self, entry: LdapEntry, obj: Any) -> None:
        """
        Copy this attribute's values from ``entry`` onto ``obj``.
        """
        self.value_to_object(
            obj, modlist.get_values(entry, self.ldap_attribute, self.transcoder)
        )


class CharAttribute(Attribute):
    """A single valued text attribute."""


class CharListAttribute(Attribute):
    """A multi-valued text attribute, held as a list of strings."""

    multivalued: bool = True


class IntegerAttribute(Attribute):
    """A single valued integer attribute."""

    transcoder_class = IntegerTranscoder


class BooleanAttribute(Attribute):
    """A boolean attribute stored as ``true``/``false``."""

    transcoder_class = BooleanTranscoder


class AllCapsBooleanAttribute(BooleanAttribute):
    """A boolean attribute stored as ``TRUE``/``FALSE``."""

    transcoder_class = AllCapsBooleanTranscoder


class DateTimeAttribute(Attribute):
    """A datetime attribute stored as LDAP generalized time in UTC."""

    transcoder_class = GeneralizedTimeTranscoder


class UUIDAttribute(Attribute):
    """A :py:class:`uuid.UUID` attribute stored as text."""

    transcoder_class = UUIDTranscoder


class BinaryAttribute(Attribute):
    """
    A single valued binary attribute (photos, certificates, ...), held as
    ``bytes``.
    """

    transcoder_class = BinaryTranscoder


class BinaryListAttribute(BinaryAttribute):
    """A multi-valued binary attribute, held as a list of ``bytes``."""

    multivalued: bool = True
