"""
Attribute synchronization.

The functions in this module bring one attribute of an
:py:class:`~ldapmapper.entries.LdapEntry` in line with a set of desired
Python values.  They mutate the entry in place and return the
:py:class:`~ldapmapper.entries.Modification` that describes the change, or
``None`` when the entry already matched.

:py:func:`set_values` holds the decision logic:

========= ============ ================= ==========
attribute desired      desired == current action
========= ============ ================= ==========
absent    empty        n/a               none
absent    not empty    n/a               ADD
present   empty        n/a               DELETE
present   not empty    yes               none
present   not empty    no                REPLACE
========= ============ ================= ==========

Desired values are normalized before every comparison and every write:
``None`` and empty strings are dropped (many servers reject empty values) and
repeated values are collapsed.  Current and desired values are compared as
ordered lists, so a change in value order alone produces a REPLACE.
"""

import logging
from collections.abc import Iterable
from typing import Any

from .entries import LdapAttribute, LdapEntry, Modification, ModificationType
from .transcoders import ValueTranscoder

logger = logging.getLogger("django-ldapmapper")


def _normalize(values: Any) -> list[Any]:
    """
    Drop ``None``, empty strings and repeats from ``values``, keeping order.
    A bare string or bytes value counts as a single value.
    """
    if values is None:
        return []
    if isinstance(values, (str, bytes, bytearray)):
        values = [values]
    cleaned: list[Any] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, str) and not value:
            continue
        if value not in cleaned:
            cleaned.append(value)
    return cleaned


def _check_target(entry: LdapEntry | None, name: str | None) -> None:
    if entry is None:
        msg = "entry must not be None"
        raise ValueError(msg)
    if not name:
        msg = "attribute name must not be empty"
        raise ValueError(msg)


def _require_transcoder(
    name: str, transcoder: ValueTranscoder | None
) -> ValueTranscoder:
    if transcoder is None:
        msg = f'A transcoder is required to write or compare values of "{name}"'
        raise ValueError(msg)
    return transcoder


def _encode(
    name: str, values: list[Any], binary: bool, transcoder: ValueTranscoder
) -> LdapAttribute:
    """
    Build a new attribute holding ``values`` encoded with ``transcoder``.
    """
    return LdapAttribute(
        name, [transcoder.encode(value) for value in values], binary=binary
    )


def _record(
    entry: LdapEntry, kind: ModificationType, attribute: LdapAttribute
) -> Modification:
    logger.debug(
        "ldapmapper.modlist.%s dn=%s attribute=%s",
        kind.name.lower(),
        entry.dn,
        attribute.name,
    )
    return Modification(kind, attribute)


def set_values(
    entry: LdapEntry,
    name: str,
    values: Iterable[Any] | None,
    is_binary: bool = False,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Make the attribute ``name`` on ``entry`` hold exactly ``values``.

    An attribute that does not exist yet is created with ``is_binary`` as its
    binary flag; an existing attribute keeps its own flag.

    Args:
        entry: The entry to update.
        name: The attribute name.
        values: The desired Python values.  ``None`` or empty removes the
            attribute.

    Keyword Args:
        is_binary: Whether a newly created attribute holds binary values.
        transcoder: Converts between Python and wire values.  Required
            whenever ``values`` is not empty.

    Raises:
        ValueError: ``entry`` or ``name`` is missing, or ``transcoder`` is
            missing while ``values`` is not empty.
        TranscodingError: the current values cannot be decoded, or the
            desired ones encoded, with ``transcoder``.

    Returns:
        The modification made, or ``None`` if the entry already matched.

    """
    _check_target(entry, name)
    wanted = _normalize(values)
    attr = entry.get_attribute(name)
    if not wanted:
        if attr is None:
            return None
        entry.remove_attribute(name)
        return _record(entry, ModificationType.DELETE, attr)

    transcoder = _require_transcoder(name, transcoder)
    if attr is None:
        new_attr = _encode(name, wanted, is_binary, transcoder)
        entry.add_attribute(new_attr)
        return _record(entry, ModificationType.ADD, new_attr)

    new_attr = _encode(name, wanted, attr.binary, transcoder)
    # Compare what we would store, decoded, so that values the transcoder
    # cannot represent exactly (e.g. sub-second datetimes) do not look changed.
    if attr.decode(transcoder) == new_attr.decode(transcoder):
        return None
    entry.add_attribute(new_attr)
    return _record(entry, ModificationType.REPLACE, new_attr)


def set_value(
    entry: LdapEntry,
    name: str,
    value: Any,
    is_binary: bool = False,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Single valued form of :py:func:`set_values`.  A ``value`` of ``None``
    removes the attribute.
    """
    return set_values(
        entry,
        name,
        None if value is None else [value],
        is_binary=is_binary,
        transcoder=transcoder,
    )


def add_values(
    entry: LdapEntry,
    name: str,
    values: Iterable[Any] | None,
    is_binary: bool = False,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Add ``values`` to the attribute ``name``, keeping the values it already
    has.  Values already present are not added again.

    Args:
        entry: The entry to update.
        name: The attribute name.
        values: The Python values to add.

    Keyword Args:
        is_binary: Whether a newly created attribute holds binary values.
        transcoder: Converts between Python and wire values.

    Returns:
        ``ADD`` if the attribute was created, ``REPLACE`` if it gained
        values, otherwise ``None``.

    """
    _check_target(entry, name)
    new_values = _normalize(values)
    if not new_values:
        return None
    transcoder = _require_transcoder(name, transcoder)
    attr = entry.get_attribute(name)
    if attr is None:
        return set_values(entry, name, new_values, is_binary, transcoder)
    merged = attr.decode(transcoder)
    for value in new_values:
        if value not in merged:
            merged.append(value)
    return set_values(entry, name, merged, attr.binary, transcoder)


def add_value(
    entry: LdapEntry,
    name: str,
    value: Any,
    is_binary: bool = False,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Single valued form of :py:func:`add_values`.
    """
    return add_values(
        entry,
        name,
        None if value is None else [value],
        is_binary=is_binary,
        transcoder=transcoder,
    )


def remove_attribute(entry: LdapEntry, name: str) -> Modification | None:
    """
    Remove the attribute ``name`` from ``entry`` entirely.

    Returns:
        ``DELETE`` if the attribute existed, otherwise ``None``.

    """
    _check_target(entry, name)
    attr = entry.remove_attribute(name)
    if attr is None:
        return None
    return _record(entry, ModificationType.DELETE, attr)


def remove_values(
    entry: LdapEntry,
    name: str,
    values: Iterable[Any] | None,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Remove ``values`` from the attribute ``name``.  If no values remain, the
    attribute is deleted.  Empty or ``None`` ``values`` change nothing.

    Returns:
        ``REPLACE`` or ``DELETE`` if the attribute changed, otherwise
        ``None``.

    """
    _check_target(entry, name)
    removals = _normalize(values)
    attr = entry.get_attribute(name)
    if attr is None or not removals:
        return None
    transcoder = _require_transcoder(name, transcoder)
    remaining = [value for value in attr.decode(transcoder) if value not in removals]
    return set_values(entry, name, remaining, attr.binary, transcoder)


def remove_value(
    entry: LdapEntry,
    name: str,
    value: Any,
    transcoder: ValueTranscoder | None = None,
) -> Modification | None:
    """
    Remove ``value`` from the attribute ``name``.  A ``value`` of ``None``
    removes the whole attribute.
    """
    if value is None:
        return remove_attribute(entry, name)
    return remove_values(entry, name, [value], transcoder=transcoder)


def get_values(
    entry: LdapEntry | None, name: str, transcoder: ValueTranscoder
) -> list[Any]:
    """
    Return the decoded values of attribute ``name``, or ``[]`` if ``entry``
    is ``None`` or has no such attribute.
    """
    attr = entry.get_attribute(name) if entry is not None else None
    if attr is None:
        return []
    return attr.decode(transcoder)


def get_values_as_set(
    entry: LdapEntry | None, name: str, transcoder: ValueTranscoder
) -> set[Any]:
    """
    Like :py:func:`get_values`, but as a set.
    """
    return set(get_values(entry, name, transcoder))


def get_value(
    entry: LdapEntry | None,
    name: str,
    transcoder: ValueTranscoder,
    default: Any = None,
) -> Any:
    """
    Return the first decoded value of attribute ``name``, or ``default``.
    """
    values = get_values(entry, name, transcoder)
    return values[0] if values else default
