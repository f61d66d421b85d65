"""
LDAP mapper type definitions.

This module provides type aliases for the python-ldap data structures that
the entry and connection modules produce and consume.
"""

from typing import Any

#: A single wire value: ``str`` for text attributes, ``bytes`` for binary ones.
WireValue = str | bytes
#: A python-ldap MOD_DELETE modlist entry.
DeleteModListEntry = tuple[int, str, None]
#: A python-ldap MOD_ADD or MOD_REPLACE modlist entry.
ModifyModListEntry = tuple[int, str, list[bytes]]
ModifyModList = list[DeleteModListEntry | ModifyModListEntry]
AddModlist = list[tuple[str, list[bytes]]]
#: What python-ldap's ``search_s`` returns for one entry.
LDAPData = tuple[str, dict[str, list[bytes]]]
#: Options for one server in ``settings.LDAP_SERVERS``.
ServerConfig = dict[str, Any]
