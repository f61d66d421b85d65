"""
Connections to LDAP servers.

The mapping and synchronization modules never talk to a server.  This module
is the glue that lets callers fetch the current entry before reconciling and
send the resulting request afterwards:

.. code-block:: python

    template = autoconfigure("default")
    entry = template.find_entry(
        mapper.dn(person), binary_attributes=mapper.binary_attributes
    )
    template.modify(mapper.modify_request(person, entry))

Servers are configured in ``settings.LDAP_SERVERS``:

.. code-block:: python

    LDAP_SERVERS = {
        "default": {
            "basedn": "dc=example,dc=com",
            "pooled": True,
            "read": {"url": "ldap://ldap:389", "user": "...", "password": "..."},
            "write": {"url": "ldap://ldap:389", "user": "...", "password": "..."},
        }
    }
"""

import logging
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string
from ldap_filter import Filter

from ldapmapper import ldap

from .entries import LdapEntry, ModifyRequest
from .typing import ServerConfig

if TYPE_CHECKING:
    from .mappers import EntryMapper

logger = logging.getLogger("django-ldapmapper")


def get_server_config(key: str = "default") -> ServerConfig:
    """
    Return the ``settings.LDAP_SERVERS`` entry for ``key``.

    Raises:
        ImproperlyConfigured: ``LDAP_SERVERS`` or the key is missing.

    """
    try:
        servers = settings.LDAP_SERVERS
    except AttributeError as e:
        msg = "settings.LDAP_SERVERS does not exist!"
        raise ImproperlyConfigured(msg) from e
    try:
        return servers[key]
    except KeyError as e:
        msg = f"settings.LDAP_SERVERS has no key '{key}'"
        raise ImproperlyConfigured(msg) from e


class ConnectionConfigFactory:
    """
    Applies the options in one ``read`` or ``write`` block of a server
    configuration to a freshly initialized python-ldap connection.

    Replace it by pointing ``settings.LDAPMAPPER_CONNECTION_CONFIG_FACTORY`` at
    a subclass (or any callable with the same signature).
    """

    @classmethod
    def default_factory(cls) -> "ConnectionConfigFactory":
        return cls()

    def __call__(  # noqa: PLR0912
        self,
        ldap_object: ldap.ldapobject.LDAPObject,  # type: ignore[name-defined]
        config: dict[str, Any],
    ) -> None:
        """
        Set options on ``ldap_object``.

        Raises:
            ValueError: If the ``tls_verify`` value in the configuration is invalid.
            OSError: If a configured CA certificate, certificate or key file
                does not exist or is not a file.

        """
        if config.get("follow_referrals", False):
            ldap_object.set_option(ldap.OPT_REFERRALS, 1)  # type: ignore[attr-defined]
        else:
            ldap_object.set_option(ldap.OPT_REFERRALS, 0)  # type: ignore[attr-defined]
        timeout = config.get("timeout", 15.0)
        ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(timeout))  # type: ignore[attr-defined]
        sizelimit = config.get("sizelimit", None)
        if sizelimit:
            ldap_object.set_option(ldap.OPT_SIZELIMIT, int(sizelimit))  # type: ignore[attr-defined]
        tls_verify = config.get("tls_verify", "never")
        if tls_verify == "never":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_NEVER)  # type: ignore[attr-defined]
        elif tls_verify == "always":
            ldap_object.set_option(ldap.OPT_X_TLS_REQUIRE_CERT, ldap.OPT_X_TLS_DEMAND)  # type: ignore[attr-defined]
        else:
            msg = f"Invalid tls_verify value: {tls_verify}"
            raise ValueError(msg)
        for key, option, label in (
            ("tls_ca_certfile", ldap.OPT_X_TLS_CACERTFILE, "CA Certificate file"),  # type: ignore[attr-defined]
            ("tls_certfile", ldap.OPT_X_TLS_CERTFILE, "TLS Certificate file"),  # type: ignore[attr-defined]
            ("tls_keyfile", ldap.OPT_X_TLS_KEYFILE, "TLS Key file"),  # type: ignore[attr-defined]
        ):
            if path := config.get(key, None):
                if not Path(path).exists():
                    msg = f"{label} does not exist: {path}"
                    raise OSError(msg)
                if not Path(path).is_file():
                    msg = f"{label} is not a file: {path}"
                    raise OSError(msg)
                ldap_object.set_option(option, path)
        ldap_object.set_option(ldap.OPT_X_TLS_NEWCTX, 0)  # type: ignore[attr-defined]


def get_connection_config_factory() -> ConnectionConfigFactory:
    """
    Return the factory named by ``settings.LDAPMAPPER_CONNECTION_CONFIG_FACTORY``,
    or the default one.
    """
    path = getattr(settings, "LDAPMAPPER_CONNECTION_CONFIG_FACTORY", None)
    if not path:
        return ConnectionConfigFactory.default_factory()
    return import_string(path)()


class ConnectionFactory:
    """
    Opens a new, bound connection for every :py:meth:`connection` block and
    unbinds it afterwards.

    Args:
        config: One server's entry from ``settings.LDAP_SERVERS``.

    Keyword Args:
        config_factory: Applies connection options.  Defaults to
            :py:func:`get_connection_config_factory`.

    """

    def __init__(
        self,
        config: ServerConfig,
        config_factory: ConnectionConfigFactory | None = None,
    ) -> None:
        self.config = config
        self.config_factory = config_factory or get_connection_config_factory()

    def new_connection(
        self, key: str = "read"
    ) -> ldap.ldapobject.LDAPObject:  # type: ignore[name-defined]
        """
        Create and return a new bound connection.

        Args:
            key: Either "read" or "write".  Determines which block of the
                server configuration to use.

        Raises:
            ImproperlyConfigured: the server configuration has no ``key`` block.

        """
        try:
            config = self.config[key]
        except KeyError as e:
            msg = f"LDAP server configuration has no '{key}' block"
            raise ImproperlyConfigured(msg) from e
        ldap_object = ldap.initialize(config["url"])  # type: ignore[attr-defined]
        self.config_factory(ldap_object, config)
        if config.get("use_starttls", True):
            ldap_object.start_tls_s()
        ldap_object.simple_bind_s(config["user"], config["password"])
        return ldap_object

    @contextmanager
    def connection(
        self, key: str = "read"
    ) -> Iterator[ldap.ldapobject.LDAPObject]:  # type: ignore[name-defined]
        ldap_object = self.new_connection(key)
        try:
            yield ldap_object
        finally:
            # We do this in a finally: branch so that the ldap
            # connection gets cleaned up no matter what happens in the block.
            ldap_object.unbind_s()

    def close(self) -> None:
        """Nothing to close; every connection is unbound after use."""


class PooledConnectionFactory(ConnectionFactory):
    """
    Keeps one bound connection per thread and key, reusing it across
    :py:meth:`connection` blocks until :py:meth:`close`.  python-ldap
    connections are not thread-safe, so threads never share one.
    """

    def __init__(
        self,
        config: ServerConfig,
        config_factory: ConnectionConfigFactory | None = None,
    ) -> None:
        super().__init__(config, config_factory=config_factory)
        # keys in this dictionary get manipulated by .connection() and .close()
        self._ldap_objects: dict[
            tuple[threading.Thread, str],
            ldap.ldapobject.LDAPObject,  # type: ignore[name-defined]
        ] = {}

    def has_connection(self, key: str = "read") -> bool:
        return (threading.current_thread(), key) in self._ldap_objects

    @contextmanager
    def connection(
        self, key: str = "read"
    ) -> Iterator[ldap.ldapobject.LDAPObject]:  # type: ignore[name-defined]
        pool_key = (threading.current_thread(), key)
        if pool_key not in self._ldap_objects:
            self._prune()
            self._ldap_objects[pool_key] = self.new_connection(key)
        ldap_object = self._ldap_objects[pool_key]
        try:
            yield ldap_object
        except ldap.LDAPError:  # type: ignore[attr-defined]
            # The connection may be dead; the next block on this thread
            # gets a new one.
            self._ldap_objects.pop(pool_key, None)
            self._unbind(ldap_object)
            raise

    def _prune(self) -> None:
        """
        Unbind the connections of threads that have exited.
        """
        for pool_key in list(self._ldap_objects):
            if not pool_key[0].is_alive():
                self._unbind(self._ldap_objects.pop(pool_key))

    def _unbind(
        self, ldap_object: ldap.ldapobject.LDAPObject  # type: ignore[name-defined]
    ) -> None:
        try:
            ldap_object.unbind_s()
        except ldap.LDAPError as e:  # type: ignore[attr-defined]
            logger.debug("ldapmapper.pool.unbind.failed error=%s", e)

    def close(self) -> None:
        """
        Unbind every pooled connection.
        """
        while self._ldap_objects:
            _, ldap_object = self._ldap_objects.popitem()
            ldap_object.unbind_s()


class LdapTemplate:
    """
    Reads entries from, and writes requests to, an LDAP server.

    Args:
        connection_factory: Supplies bound connections.

    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self.connection_factory = connection_factory

    def find_entry(
        self, dn: str, binary_attributes: Iterable[str] = ()
    ) -> LdapEntry | None:
        """
        Fetch the entry at ``dn``.

        Keyword Args:
            binary_attributes: Names of attributes whose values are binary.

        Returns:
            The entry, or ``None`` if there is no entry at ``dn``.

        """
        with self.connection_factory.connection("read") as conn:
            try:
                results = conn.search_s(
                    dn,
                    ldap.SCOPE_BASE,  # type: ignore[attr-defined]
                    Filter.attribute("objectClass").present().to_string(),
                )
            except ldap.NO_SUCH_OBJECT:  # type: ignore[attr-defined]
                logger.debug("ldapmapper.template.find_entry.no-such-object dn=%s", dn)
                return None
        for data in results:
            # AD returns references as results with a non-dict payload
            if isinstance(data[1], dict):
                return LdapEntry.from_db(data, binary_attributes=binary_attributes)
        return None

    def find_entries(
        self, mapper: "EntryMapper", binary_attributes: Iterable[str] | None = None
    ) -> list[LdapEntry]:
        """
        Fetch every entry below ``mapper``'s base DN that has all of its
        object classes.

        Keyword Args:
            binary_attributes: Names of attributes whose values are binary.
                Defaults to ``mapper.binary_attributes``.

        """
        if binary_attributes is None:
            binary_attributes = mapper.binary_attributes
        object_classes = mapper.object_classes
        if object_classes:
            search_filter = Filter.AND(
                [Filter.attribute("objectClass").equal_to(oc) for oc in object_classes]
            ).simplify()
        else:
            search_filter = Filter.attribute("objectClass").present()
        basedn = mapper.meta.get_basedn()
        with self.connection_factory.connection("read") as conn:
            results = conn.search_s(
                basedn,
                ldap.SCOPE_SUBTREE,  # type: ignore[attr-defined]
                search_filter.to_string(),
            )
        return [
            LdapEntry.from_db(data, binary_attributes=binary_attributes)
            for data in results
            if isinstance(data[1], dict)
        ]

    def modify(self, request: ModifyRequest) -> bool:
        """
        Send ``request`` to the server, unless it has no modifications.

        Returns:
            ``True`` if a request was sent.

        """
        if not request.has_changes:
            logger.debug("ldapmapper.template.modify.no-changes dn=%s", request.dn)
            return False
        with self.connection_factory.connection("write") as conn:
            conn.modify_s(request.dn, request.modlist)
        logger.info(
            "ldapmapper.template.modify.success dn=%s modifications=%d",
            request.dn,
            len(request.modifications),
        )
        return True

    def add(self, entry: LdapEntry) -> None:
        """
        Create ``entry`` on the server.  See
        :py:meth:`~ldapmapper.mappers.EntryMapper.new_entry`.
        """
        with self.connection_factory.connection("write") as conn:
            conn.add_s(entry.dn, entry.to_add_modlist())
        logger.info("ldapmapper.template.add.success dn=%s", entry.dn)


def autoconfigure(key: str = "default") -> LdapTemplate:
    """
    Build an :py:class:`LdapTemplate` for ``settings.LDAP_SERVERS[key]``,
    pooled if the server's ``pooled`` option is true.
    """
    config = get_server_config(key)
    factory_class = (
        PooledConnectionFactory if config.get("pooled", False) else ConnectionFactory
    )
    logger.debug(
        "ldapmapper.autoconfigure server=%s factory=%s", key, factory_class.__name__
    )
    return LdapTemplate(factory_class(config))
