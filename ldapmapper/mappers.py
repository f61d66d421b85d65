"""
Entry mapper base classes and metaclass.

An :py:class:`EntryMapper` subclass describes how one kind of domain object
maps onto LDAP entries.  Declare the mapped attributes as class attributes and
the DN layout in ``Meta``:

.. code-block:: python

    class PersonMapper(EntryMapper):
        uid = CharAttribute(field_name="username")
        cn = CharAttribute(field_name="full_name")
        mail = CharListAttribute(field_name="emails")
        jpegPhoto = BinaryAttribute(field_name="photo")

        class Meta:
            model = Person
            basedn = "ou=people,dc=example,dc=com"
            rdn_attribute = "uid"
            object_classes = ["top", "inetOrgPerson"]

    mapper = PersonMapper()
    request = mapper.modify_request(person, entry)

Mappers hold no per-call state; one instance can serve any number of
threads, as long as each thread works on its own entries.
"""

import copy
import inspect
import logging
from typing import Any, Generic, TypeVar, cast

from django.core.exceptions import ImproperlyConfigured

from . import modlist
from .dn import build_dn
from .entries import LdapEntry, Modification, ModifyRequest
from .options import Options
from .transcoders import StringTranscoder

logger = logging.getLogger("django-ldapmapper")

T = TypeVar("T")

#: The attribute that holds an entry's object classes.
OBJECT_CLASS_ATTRIBUTE = "objectClass"


class EntryMapperBase(type):
    """
    Metaclass for entry mappers.

    Collects the :py:class:`~ldapmapper.attributes.Attribute` declarations of
    a mapper class (and those inherited from parent mappers) into its
    ``_meta`` :py:class:`~ldapmapper.options.Options`.
    """

    def __new__(cls, name, bases, attrs, **kwargs):
        super_new = super().__new__
        parents = [b for b in bases if isinstance(b, EntryMapperBase)]
        if not parents:
            return super_new(cls, name, bases, attrs, **kwargs)

        # Create the class.
        module = attrs.pop("__module__")
        new_attrs = {"__module__": module}
        classcell = attrs.pop("__classcell__", None)
        if classcell is not None:
            new_attrs["__classcell__"] = classcell
        new_class = super_new(cls, name, bases, new_attrs, **kwargs)
        attr_meta = attrs.pop("Meta", None)
        meta = attr_meta or getattr(new_class, "Meta", None)
        new_class.Meta = meta

        new_class.add_to_class("_meta", Options(meta))

        # Attributes declared on parent mappers come first.
        for parent in parents:
            parent_meta = getattr(parent, "_meta", None)
            if parent_meta is None:
                continue
            for attribute in parent_meta.attributes:
                if attribute.name in attrs:
                    continue
                new_class.add_to_class(attribute.name, copy.copy(attribute))

        for obj_name, obj in attrs.items():
            new_class.add_to_class(obj_name, obj)

        new_class._prepare()
        return new_class

    def add_to_class(cls, name: str, value: Any) -> None:
        """
        Add an attribute to the class, calling contribute_to_class if available.
        """
        # We should call the contribute_to_class method only if it's bound
        if not inspect.isclass(value) and hasattr(value, "contribute_to_class"):
            value.contribute_to_class(cls, name)
        else:
            setattr(cls, name, value)

    def _prepare(cls) -> None:
        opts = cls._meta  # type: ignore[attr-defined]
        opts._prepare(cls)
        if cls.__doc__ is None:
            cls.__doc__ = "{}({})".format(
                cls.__name__,
                ", ".join(a.ldap_attribute for a in opts.attributes),
            )


class EntryMapper(Generic[T], metaclass=EntryMapperBase):
    """
    Base class for entry mappers.

    Subclasses may override :py:meth:`new_object` to build domain objects
    that cannot be created without arguments, and :py:meth:`dn` for DN
    layouts other than ``rdn_attribute=value,basedn``.
    """

    #: The mapper's metadata and configuration options.
    _meta: Options | None = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"

    @property
    def meta(self) -> Options:
        return cast("Options", self._meta)

    @property
    def object_classes(self) -> list[str]:
        """
        The object classes a new entry needs.  Not consulted on update.
        """
        return list(self.meta.object_classes)

    def get_object_classes(self) -> list[str]:
        return self.object_classes

    @property
    def binary_attributes(self) -> list[str]:
        """
        The LDAP names of the mapped binary attributes.  Pass these to
        :py:meth:`~ldapmapper.entries.LdapEntry.from_db` so their values are
        read as bytes.
        """
        return [a.ldap_attribute for a in self.meta.attributes if a.binary]

    def dn(self, obj: T) -> str:
        """
        Compute the DN of the entry for ``obj``.

        Args:
            obj: The domain object.

        Raises:
            ValueError: ``obj`` is ``None`` or has no value for the naming
                attribute.
            ImproperlyConfigured: the naming attribute is not mapped, or there
                is no base DN.

        Returns:
            ``rdn_attribute=value,basedn``.

        """
        if obj is None:
            msg = "Cannot compute a DN for None"
            raise ValueError(msg)
        rdn = self.meta.rdn
        if rdn is None:
            msg = (
                f"{self.meta.object_name}: Meta.rdn_attribute "
                f"'{self.meta.rdn_attribute}' is not a mapped attribute"
            )
            raise ImproperlyConfigured(msg)
        values = rdn.value_from_object(obj)
        if not values or values[0] == "":
            msg = f"{obj!r} has no value for '{rdn.attname}'; cannot compute its DN"
            raise ValueError(msg)
        rdn_value = rdn.transcoder.encode(values[0])
        if isinstance(rdn_value, bytes):
            rdn_value = rdn_value.decode("utf-8")
        return build_dn(rdn.ldap_attribute, rdn_value, self.meta.get_basedn())

    def new_object(self) -> T:
        """
        Return a new, empty domain object for :py:meth:`to_object` to fill.

        Raises:
            ImproperlyConfigured: ``Meta.model`` is not set.

        """
        if self.meta.model is None:
            msg = (
                f"{self.meta.object_name}: set Meta.model or override "
                "new_object() to map entries to new objects"
            )
            raise ImproperlyConfigured(msg)
        return cast("T", self.meta.model())

    def to_object(self, entry: LdapEntry) -> T:
        """
        Map ``entry`` onto a new domain object.
        """
        obj = self.new_object()
        self.update_object(entry, obj)
        return obj

    def update_object(self, entry: LdapEntry, obj: T) -> None:
        """
        Copy every mapped attribute from ``entry`` onto the existing ``obj``.
        Attributes missing from ``entry`` get their default.
        """
        if obj is None:
            msg = "Cannot map an entry onto None"
            raise ValueError(msg)
        for attribute in self.meta.attributes:
            attribute.load(entry, obj)

    def reconcile(self, obj: T, entry: LdapEntry) -> list[Modification]:
        """
        Update ``entry`` in place so that its mapped attributes match ``obj``,
        and return the modifications that were needed.

        Attributes are synchronized in declaration order; read-only
        (``editable=False``) attributes are skipped.  Calling this again
        with the same ``obj`` and the updated ``entry`` returns ``[]``.

        Args:
            obj: The domain object.
            entry: The entry as currently stored in LDAP.

        Raises:
            ValueError: ``obj`` or ``entry`` is ``None``.

        Returns:
            The modifications, possibly empty.

        """
        if obj is None:
            msg = "Cannot reconcile an entry with None"
            raise ValueError(msg)
        if entry is None:
            msg = "entry must not be None"
            raise ValueError(msg)
        modifications: list[Modification] = []
        for attribute in self.meta.attributes:
            if not attribute.editable:
                continue
            modification = attribute.sync(entry, obj)
            if modification is not None:
                modifications.append(modification)
        if not modifications:
            logger.debug("ldapmapper.mapper.reconcile.no-changes dn=%s", entry.dn)
        return modifications

    def modify_request(self, obj: T, entry: LdapEntry) -> ModifyRequest:
        """
        :py:meth:`reconcile` ``obj`` with ``entry`` and wrap the result in a
        :py:class:`~ldapmapper.entries.ModifyRequest` for ``entry.dn``.
        """
        return ModifyRequest(entry.dn, self.reconcile(obj, entry))

    def new_entry(self, obj: T) -> LdapEntry:
        """
        Build the entry that would store ``obj`` if it does not exist in LDAP
        yet: its DN, its object classes, and every mapped attribute.

        Pass the result's :py:meth:`~ldapmapper.entries.LdapEntry.to_add_modlist`
        to python-ldap's ``add_s()``.
        """
        entry = LdapEntry(self.dn(obj))
        modlist.set_values(
            entry,
            OBJECT_CLASS_ATTRIBUTE,
            self.object_classes,
            transcoder=StringTranscoder(),
        )
        self.reconcile(obj, entry)
        return entry
