"""
Entry mapper options and metadata.

This module provides the Options class that holds an
:py:class:`~ldapmapper.mappers.EntryMapper`'s ``Meta`` configuration and its
mapped attributes.
"""

from bisect import bisect
from typing import TYPE_CHECKING, Any, cast

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.functional import cached_property

if TYPE_CHECKING:
    from .attributes import Attribute
    from .mappers import EntryMapper

#: The names allowed on a mapper's ``Meta`` class.
DEFAULT_NAMES = (
    "model",
    "ldap_server",
    "basedn",
    "rdn_attribute",
    "object_classes",
)


class Options:
    """
    Options class for entry mapper metadata and configuration.

    This gets instantiated by parsing the ``Meta`` class for the mapper, and is
    available as ``mapper._meta`` on the mapper class.

    Args:
        meta: The Meta class from the mapper definition.

    """

    def __init__(self, meta) -> None:
        #: The domain class that :py:meth:`~ldapmapper.mappers.EntryMapper.to_object`
        #: instantiates.  It must be callable without arguments.
        self.model: type | None = None
        #: The key into ``settings.LDAP_SERVERS`` used to find ``basedn`` when
        #: :py:attr:`basedn` is not set.
        self.ldap_server: str = "default"
        #: The DN of the container the mapped entries live in.
        self.basedn: str | None = None
        #: The LDAP attribute that names an entry within :py:attr:`basedn`.
        self.rdn_attribute: str | None = None
        #: The object classes a new entry needs.  Not consulted on update.
        self.object_classes: list[str] = []

        #: This is set up by the :py:class:`~ldapmapper.mappers.EntryMapperBase`
        #: metaclass.  It is not intended to be set by the user.
        self.object_name: str | None = None
        #: This is set up by the :py:class:`~ldapmapper.mappers.EntryMapperBase`
        #: metaclass.  It is not intended to be set by the user.
        self.mapper: type[EntryMapper] | None = None
        self.meta = meta
        self.local_attributes: list[Attribute] = []

    def __repr__(self) -> str:
        return f"<Options for {self.object_name}>"

    def contribute_to_class(self, cls: type["EntryMapper"], name: str) -> None:  # noqa: ARG002
        """
        Used by the :py:class:`~ldapmapper.mappers.EntryMapperBase` metaclass to
        add this :py:class:`Options` instance to a mapper class.

        Args:
            cls: The mapper class to contribute to.
            name: The name of the options attribute.

        Raises:
            TypeError: ``Meta`` has attributes that are not options.

        """
        cls._meta = self
        self.mapper = cls
        self.object_name = cls.__name__

        if self.meta:
            meta_attrs = {
                k: v for k, v in self.meta.__dict__.items() if not k.startswith("_")
            }
            for attr_name in DEFAULT_NAMES:
                if attr_name in meta_attrs:
                    setattr(self, attr_name, meta_attrs.pop(attr_name))
                elif hasattr(self.meta, attr_name):
                    setattr(self, attr_name, getattr(self.meta, attr_name))
            # Any leftover attributes must be invalid.
            if meta_attrs != {}:
                msg = "'class Meta' got invalid attribute(s): {}".format(
                    ",".join(meta_attrs)
                )
                raise TypeError(msg)
        self.object_classes = list(self.object_classes)
        del self.meta

    def _prepare(self, mapper: type["EntryMapper"]) -> None:  # noqa: ARG002
        """
        Used by the :py:class:`~ldapmapper.mappers.EntryMapperBase` metaclass to
        check the mapper after all attributes have been added.

        Raises:
            ImproperlyConfigured: the mapper has no ``rdn_attribute``, or maps
                the same LDAP attribute twice.

        """
        if not self.rdn_attribute:
            msg = f"'{self.object_name}' mapper doesn't set Meta.rdn_attribute"
            raise ImproperlyConfigured(msg)
        seen: dict[str, str] = {}
        for attribute in self.attributes:
            key = attribute.ldap_attribute.lower()
            if key in seen:
                msg = (
                    f"'{self.object_name}' maps LDAP attribute "
                    f"'{attribute.ldap_attribute}' twice: on '{seen[key]}' and "
                    f"'{attribute.name}'"
                )
                raise ImproperlyConfigured(msg)
            seen[key] = cast("str", attribute.name)

    def add_attribute(self, attribute: "Attribute") -> None:
        """
        Used by :py:meth:`~ldapmapper.attributes.Attribute.contribute_to_class`
        to add an attribute, keeping declaration order.
        """
        self.local_attributes.insert(
            bisect(self.local_attributes, attribute), attribute
        )

    @property
    def attributes(self) -> list["Attribute"]:
        """
        All mapped attributes, in declaration order.
        """
        return self.local_attributes

    @cached_property
    def attributes_map(self) -> dict[str, "Attribute"]:
        """
        Mapped attributes keyed by lowercased LDAP attribute name.
        """
        return {a.ldap_attribute.lower(): a for a in self.local_attributes}

    @property
    def rdn(self) -> "Attribute | None":
        """
        The mapped attribute for :py:attr:`rdn_attribute`, if there is one.
        """
        return self.attributes_map.get(cast("str", self.rdn_attribute).lower())

    def get_basedn(self) -> str:
        """
        Return :py:attr:`basedn`, falling back to the ``basedn`` key of this
        mapper's entry in ``settings.LDAP_SERVERS``.

        Raises:
            ImproperlyConfigured: no base DN is configured anywhere.

        """
        if self.basedn:
            return self.basedn
        try:
            config: dict[str, Any] = settings.LDAP_SERVERS[self.ldap_server]
        except AttributeError as e:
            msg = (
                f"{self.object_name}: no Meta.basedn and settings.LDAP_SERVERS "
                "does not exist!"
            )
            raise ImproperlyConfigured(msg) from e
        except KeyError as e:
            msg = (
                f"{self.object_name}: no Meta.basedn and settings.LDAP_SERVERS "
                f"has no key '{self.ldap_server}'"
            )
            raise ImproperlyConfigured(msg) from e
        try:
            return config["basedn"]
        except KeyError as e:
            msg = (
                f"{self.object_name}: no Meta.basedn and settings.LDAP_SERVERS"
                f"['{self.ldap_server}'] has no 'basedn' key"
            )
            raise ImproperlyConfigured(msg) from e
