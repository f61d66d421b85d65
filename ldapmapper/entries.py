"""
In-memory LDAP entries and modifications.

:py:class:`LdapEntry` is a DN plus a set of :py:class:`LdapAttribute`
objects.  The functions in :py:mod:`ldapmapper.modlist` mutate entries in place
and describe each change as a :py:class:`Modification`; a list of those,
keyed by the entry's DN, is a :py:class:`ModifyRequest`.

Everything here converts to and from the structures python-ldap uses, so
entries can be built straight from ``search_s()`` results and requests handed
straight to ``modify_s()``.
"""

import enum
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any, NamedTuple

from ldap import modlist

from ldapmapper import ldap

from .typing import (
    AddModlist,
    DeleteModListEntry,
    LDAPData,
    ModifyModList,
    ModifyModListEntry,
    WireValue,
)

if TYPE_CHECKING:
    from .transcoders import ValueTranscoder

logger = logging.getLogger("django-ldapmapper")

#: The attribute option that marks a value as binary regardless of schema.
BINARY_OPTION = ";binary"


class LdapAttribute:
    """
    A named, multi-valued LDAP attribute.

    Values are kept in the order they were added; adding a value that is
    already present is ignored, since LDAP stores each value once.

    Args:
        name: The attribute name.

    Keyword Args:
        values: Initial wire values.
        binary: ``True`` if the values are ``bytes``.

    """

    def __init__(
        self, name: str, values: Iterable[WireValue] = (), binary: bool = False
    ) -> None:
        self.name = name
        self.binary = binary
        self.values: list[WireValue] = []
        self.add_values(values)

    def __repr__(self) -> str:
        kind = "binary" if self.binary else "text"
        return f"<LdapAttribute {self.name} ({kind}): {self.values!r}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LdapAttribute):
            return NotImplemented
        return (
            self.name.lower() == other.name.lower()
            and self.binary == other.binary
            and self.values == other.values
        )

    def __hash__(self) -> int:
        return hash(self.name.lower())

    def __len__(self) -> int:
        return len(self.values)

    @property
    def value(self) -> WireValue | None:
        """
        The first value, or ``None`` if the attribute has no values.
        """
        return self.values[0] if self.values else None

    def add_values(self, values: Iterable[WireValue]) -> None:
        """
        Append ``values``, skipping any already present.

        Args:
            values: Wire values to append.

        """
        for value in values:
            if value not in self.values:
                self.values.append(value)

    def decode(self, transcoder: "ValueTranscoder") -> list[Any]:
        """
        Decode every value with ``transcoder``.

        Values read back as text (servers only flag some binary attributes as
        binary) are handed to a binary transcoder as their UTF-8 bytes.

        Args:
            transcoder: The transcoder to decode with.

        Raises:
            TranscodingError: a value does not fit the transcoder.

        Returns:
            The decoded values, in order.

        """
        values = self.to_db() if transcoder.binary and not self.binary else self.values
        return [transcoder.decode(value) for value in values]

    def to_db(self) -> list[bytes]:
        """
        Return the values the way python-ldap wants them: a list of bytes.
        """
        cleaned = []
        for value in self.values:
            _value = value
            if isinstance(value, str):
                _value = value.encode("utf-8")
            cleaned.append(_value)
        return cleaned


class LdapEntry:
    """
    An LDAP entry: a DN and its attributes.

    Attribute names are case-insensitive, as they are in LDAP; the entry
    holds at most one :py:class:`LdapAttribute` per name.

    Keyword Args:
        dn: The entry's distinguished name.
        attributes: Initial attributes.

    """

    def __init__(
        self, dn: str | None = None, attributes: Iterable[LdapAttribute] = ()
    ) -> None:
        self.dn = dn
        self._attributes: dict[str, LdapAttribute] = {}
        for attribute in attributes:
            self.add_attribute(attribute)

    def __repr__(self) -> str:
        return f"<LdapEntry {self.dn}: {', '.join(self.attribute_names)}>"

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._attributes

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LdapEntry):
            return NotImplemented
        return self.dn == other.dn and self._attributes == other._attributes

    __hash__ = None  # type: ignore[assignment]

    @property
    def attributes(self) -> list[LdapAttribute]:
        """
        All attributes, in the order they were added.
        """
        return list(self._attributes.values())

    @property
    def attribute_names(self) -> list[str]:
        """
        The names of all attributes, in the order they were added.
        """
        return [attribute.name for attribute in self._attributes.values()]

    def get_attribute(self, name: str) -> LdapAttribute | None:
        """
        Return the attribute named ``name``, or ``None``.
        """
        return self._attributes.get(name.lower())

    def add_attribute(self, attribute: LdapAttribute) -> None:
        """
        Add ``attribute``, replacing any attribute with the same name.
        """
        self._attributes[attribute.name.lower()] = attribute

    def remove_attribute(self, name: str) -> LdapAttribute | None:
        """
        Remove the attribute named ``name``.

        Returns:
            The removed attribute, or ``None`` if there was none.

        """
        return self._attributes.pop(name.lower(), None)

    @classmethod
    def from_db(
        cls, data: LDAPData, binary_attributes: Iterable[str] = ()
    ) -> "LdapEntry":
        """
        Build an entry from one result of python-ldap's ``search_s()``:

        .. code-block:: python

            (DN, {'attr1': [b'value'], 'attr2': [b'value2'], ...})

        Values are decoded as UTF-8 text, except for attributes named in
        ``binary_attributes`` or carrying the ``;binary`` option.  An
        attribute whose values are not valid UTF-8 is kept as binary.

        Args:
            data: A ``(dn, attrs)`` tuple.

        Keyword Args:
            binary_attributes: Names of attributes to keep as bytes.

        Returns:
            A new entry.

        """
        binary_lookup = {name.lower() for name in binary_attributes}
        dn, attrs = data
        entry = cls(dn)
        for name, values in attrs.items():
            binary = name.lower() in binary_lookup or name.lower().endswith(
                BINARY_OPTION
            )
            wire_values: list[WireValue] = list(values)
            if not binary:
                try:
                    wire_values = [value.decode("utf-8") for value in values]
                except UnicodeDecodeError:
                    logger.debug(
                        "ldapmapper.entry.from_db.binary-fallback dn=%s attribute=%s",
                        dn,
                        name,
                    )
                    binary = True
            entry.add_attribute(LdapAttribute(name, wire_values, binary=binary))
        return entry

    def to_db(self) -> LDAPData:
        """
        Return the entry in python-ldap's ``(dn, {name: [bytes, ...]})`` form.
        """
        return (
            self.dn or "",
            {attribute.name: attribute.to_db() for attribute in self.attributes},
        )

    def to_add_modlist(self) -> AddModlist:
        """
        Return a modlist suitable for passing to python-ldap's ``add_s()``.
        Attributes with no values are left out.
        """
        return modlist.addModlist(self.to_db()[1])


class ModificationType(enum.Enum):
    """The kind of change a :py:class:`Modification` makes."""

    ADD = ldap.MOD_ADD
    REPLACE = ldap.MOD_REPLACE
    DELETE = ldap.MOD_DELETE


class Modification(NamedTuple):
    """
    One change to one attribute of an entry.

    For ``ADD`` and ``REPLACE``, :py:attr:`attribute` holds the attribute as
    it now is on the entry.  For ``DELETE`` it holds the attribute that was
    removed.
    """

    kind: ModificationType
    attribute: LdapAttribute

    def to_modlist(self) -> DeleteModListEntry | ModifyModListEntry:
        """
        Return this modification as a python-ldap modlist item.
        """
        if self.kind is ModificationType.DELETE:
            return (ldap.MOD_DELETE, self.attribute.name, None)
        return (self.kind.value, self.attribute.name, self.attribute.to_db())


class ModifyRequest(NamedTuple):
    """
    The modifications to apply to the entry at :py:attr:`dn`.
    """

    dn: str | None
    modifications: list[Modification]

    @property
    def has_changes(self) -> bool:
        return bool(self.modifications)

    @property
    def modlist(self) -> ModifyModList:
        """
        The modifications as a list suitable for passing to python-ldap's
        ``modify_s()``.
        """
        return [modification.to_modlist() for modification in self.modifications]
