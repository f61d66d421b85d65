"""
Distinguished name helpers.

These are plain string operations.  Nothing here escapes or unescapes DN
special characters (``,``, ``+``, ``"``, ``\\``, ``<``, ``>``, ``;``, ``=``);
callers must pass values that are already escaped.
"""


def build_dn(rdn: str, rdn_value: str, basedn: str) -> str:
    """
    Build a DN from a naming attribute, its value and a base DN.

    Example:
        >>> build_dn("uid", "alice", "ou=people,dc=example,dc=com")
        'uid=alice,ou=people,dc=example,dc=com'

    Args:
        rdn: The naming attribute, e.g. ``uid`` or ``cn``.
        rdn_value: The value of the naming attribute.
        basedn: The DN of the parent entry.

    Returns:
        The DN.

    """
    return f"{rdn}={rdn_value},{basedn}"


def get_rdn_value(dn: str | None) -> str | None:
    """
    Return the value of the leftmost naming component of ``dn``.

    Example:
        >>> get_rdn_value("cn=Alice,dc=example,dc=com")
        'Alice'

    Args:
        dn: A DN.  A string with no ``=`` is returned unchanged.

    Returns:
        The value, stripped of surrounding whitespace, or ``None`` if ``dn``
        is ``None``.

    """
    if dn is None:
        return None
    start = dn.find("=")
    if start < 0:
        return dn
    end = dn.find(",", start)
    if end < 0:
        return dn[start + 1 :].strip()
    return dn[start + 1 : end].strip()


def get_rdn(dn: str) -> str:
    """
    Return the leftmost ``attr=value`` component of ``dn``.
    """
    return dn.split(",", 1)[0].strip()


def get_parent_dn(dn: str) -> str:
    """
    Return ``dn`` without its leftmost component, or ``""`` for a single
    component DN.
    """
    parts = dn.split(",", 1)
    if len(parts) == 1:
        return ""
    return parts[1].strip()
