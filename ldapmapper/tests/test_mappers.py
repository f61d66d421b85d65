"""
Tests for EntryMapper: DN projection, reconciliation and mapping entries back
onto domain objects.
"""

import datetime
import unittest

import django
import pytest
import pytz
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.test import override_settings

from ldapmapper import ldap
from ldapmapper.attributes import (
    BinaryAttribute,
    BooleanAttribute,
    CharAttribute,
    CharListAttribute,
    DateTimeAttribute,
    IntegerAttribute,
)
from ldapmapper.entries import LdapEntry, ModificationType
from ldapmapper.mappers import EntryMapper

LDAP_SERVERS = {
    "default": {
        "basedn": "dc=example,dc=com",
        "read": {
            "url": "ldap://localhost:389",
            "user": "cn=admin,dc=example,dc=com",
            "password": "admin",
            "use_starttls": False,
            "tls_verify": "never",
        },
        "write": {
            "url": "ldap://localhost:389",
            "user": "cn=admin,dc=example,dc=com",
            "password": "admin",
            "use_starttls": False,
            "tls_verify": "never",
        },
    }
}

# Configure Django settings before any mapper is used
if not settings.configured:
    settings.configure(LDAP_SERVERS=LDAP_SERVERS)
    try:
        django.setup()
    except Exception:
        pass


class Person:
    """A plain domain object."""

    def __init__(
        self,
        username=None,
        full_name=None,
        emails=None,
        uid_number=None,
        photo=None,
        created=None,
    ):
        self.username = username
        self.full_name = full_name
        self.emails = emails if emails is not None else []
        self.uid_number = uid_number
        self.photo = photo
        self.created = created


class PersonMapper(EntryMapper[Person]):
    uid = CharAttribute(field_name="username")
    cn = CharAttribute(field_name="full_name")
    mail = CharListAttribute(field_name="emails")
    uidNumber = IntegerAttribute(field_name="uid_number")
    jpegPhoto = BinaryAttribute(field_name="photo")
    createTimestamp = DateTimeAttribute(field_name="created", editable=False)

    class Meta:
        model = Person
        basedn = "ou=people,dc=example,dc=com"
        rdn_attribute = "uid"
        object_classes = ["top", "inetOrgPerson"]


class StaffMapper(PersonMapper):
    employeeType = CharAttribute(field_name="employee_type")
    cn = CharAttribute(field_name="display_name")


class GroupMapper(EntryMapper):
    cn = CharAttribute(field_name="name")
    memberUid = CharListAttribute(field_name="members")

    class Meta:
        rdn_attribute = "cn"
        object_classes = ["posixGroup"]


class Group:
    def __init__(self, name=None, members=None):
        self.name = name
        self.members = members or []


def alice_entry():
    return LdapEntry.from_db(
        (
            "uid=alice,ou=people,dc=example,dc=com",
            {
                "uid": [b"alice"],
                "cn": [b"Alice Johnson"],
                "sn": [b"Johnson"],
                "mail": [b"alice@example.com", b"ajohnson@example.com"],
                "uidNumber": [b"1001"],
                "jpegPhoto": [b"\xff\xd8\xff\xe0"],
                "createTimestamp": [b"20240115120000Z"],
                "objectclass": [b"top", b"inetOrgPerson"],
            },
        ),
        binary_attributes=["jpegPhoto"],
    )


class TestEntryMapperOptions(unittest.TestCase):
    """Test how mapper classes are built."""

    def test_attributes_in_declaration_order(self):
        names = [a.ldap_attribute for a in PersonMapper._meta.attributes]
        self.assertEqual(
            names, ["uid", "cn", "mail", "uidNumber", "jpegPhoto", "createTimestamp"]
        )

    def test_meta_options(self):
        mapper = PersonMapper()
        self.assertEqual(mapper.object_classes, ["top", "inetOrgPerson"])
        self.assertEqual(mapper.get_object_classes(), ["top", "inetOrgPerson"])
        self.assertEqual(mapper.meta.rdn.attname, "username")
        self.assertIs(mapper.meta.model, Person)

    def test_attribute_flags(self):
        attrs = PersonMapper._meta.attributes_map
        self.assertTrue(attrs["mail"].multivalued)
        self.assertFalse(attrs["cn"].multivalued)
        self.assertTrue(attrs["jpegphoto"].binary)
        self.assertFalse(attrs["createtimestamp"].editable)

    def test_binary_attributes(self):
        self.assertEqual(PersonMapper().binary_attributes, ["jpegPhoto"])
        self.assertEqual(GroupMapper().binary_attributes, [])

    def test_inheritance(self):
        attrs = StaffMapper._meta.attributes_map
        self.assertEqual(attrs["cn"].attname, "display_name")
        self.assertEqual(attrs["uid"].attname, "username")
        self.assertIn("employeetype", attrs)
        self.assertEqual(StaffMapper._meta.rdn_attribute, "uid")
        # The parent mapper is not changed.
        self.assertEqual(PersonMapper._meta.attributes_map["cn"].attname, "full_name")
        self.assertNotIn("employeetype", PersonMapper._meta.attributes_map)

    def test_missing_rdn_attribute(self):
        with pytest.raises(ImproperlyConfigured):

            class NoRdnMapper(EntryMapper):
                cn = CharAttribute()

                class Meta:
                    basedn = "dc=example,dc=com"

    def test_invalid_meta_option(self):
        with pytest.raises(TypeError):

            class BadMetaMapper(EntryMapper):
                cn = CharAttribute()

                class Meta:
                    rdn_attribute = "cn"
                    objectclass = "person"

    def test_duplicate_ldap_attribute(self):
        with pytest.raises(ImproperlyConfigured):

            class DuplicateMapper(EntryMapper):
                cn = CharAttribute()
                common_name = CharAttribute(ldap_attribute="CN")

                class Meta:
                    rdn_attribute = "cn"


class TestEntryMapperDN(unittest.TestCase):
    """Test EntryMapper.dn."""

    def test_dn(self):
        person = Person(username="alice")
        self.assertEqual(
            PersonMapper().dn(person), "uid=alice,ou=people,dc=example,dc=com"
        )

    def test_dn_basedn_from_settings(self):
        with override_settings(LDAP_SERVERS=LDAP_SERVERS):
            self.assertEqual(
                GroupMapper().dn(Group(name="staff")), "cn=staff,dc=example,dc=com"
            )

    def test_dn_missing_server(self):
        class OtherServerMapper(EntryMapper):
            cn = CharAttribute(field_name="name")

            class Meta:
                rdn_attribute = "cn"
                ldap_server = "missing"

        with override_settings(LDAP_SERVERS=LDAP_SERVERS):
            with pytest.raises(ImproperlyConfigured):
                OtherServerMapper().dn(Group(name="staff"))

    def test_dn_unmapped_rdn(self):
        class UnmappedRdnMapper(EntryMapper):
            cn = CharAttribute(field_name="name")

            class Meta:
                basedn = "dc=example,dc=com"
                rdn_attribute = "uid"

        with pytest.raises(ImproperlyConfigured):
            UnmappedRdnMapper().dn(Group(name="staff"))

    def test_dn_errors(self):
        with pytest.raises(ValueError):
            PersonMapper().dn(None)
        with pytest.raises(ValueError):
            PersonMapper().dn(Person())


class TestEntryMapperToObject(unittest.TestCase):
    """Test mapping entries onto domain objects."""

    def test_to_object(self):
        person = PersonMapper().to_object(alice_entry())
        self.assertIsInstance(person, Person)
        self.assertEqual(person.username, "alice")
        self.assertEqual(person.full_name, "Alice Johnson")
        self.assertEqual(person.emails, ["alice@example.com", "ajohnson@example.com"])
        self.assertEqual(person.uid_number, 1001)
        self.assertEqual(person.photo, b"\xff\xd8\xff\xe0")
        self.assertEqual(
            person.created, datetime.datetime(2024, 1, 15, 12, 0, 0, tzinfo=pytz.utc)
        )

    def test_missing_attributes_get_defaults(self):
        entry = LdapEntry.from_db(("uid=bob,ou=people,dc=example,dc=com", {"uid": [b"bob"]}))
        person = PersonMapper().to_object(entry)
        self.assertEqual(person.username, "bob")
        self.assertIsNone(person.full_name)
        self.assertEqual(person.emails, [])
        self.assertIsNone(person.photo)

    def test_update_object(self):
        person = Person(username="old", full_name="Old Name")
        PersonMapper().update_object(alice_entry(), person)
        self.assertEqual(person.username, "alice")
        self.assertEqual(person.full_name, "Alice Johnson")

    def test_callable_default(self):
        class FlagMapper(EntryMapper):
            cn = CharAttribute(field_name="name")
            memberUid = CharListAttribute(field_name="members", default=lambda: ["nobody"])

            class Meta:
                basedn = "dc=example,dc=com"
                rdn_attribute = "cn"
                model = Group

        group = FlagMapper().to_object(LdapEntry("cn=staff,dc=example,dc=com"))
        self.assertEqual(group.members, ["nobody"])

    def test_no_model(self):
        entry = LdapEntry.from_db(("cn=staff,dc=example,dc=com", {"cn": [b"staff"]}))
        with pytest.raises(ImproperlyConfigured):
            GroupMapper().to_object(entry)
        group = Group()
        GroupMapper().update_object(entry, group)
        self.assertEqual(group.name, "staff")


class TestEntryMapperReconcile(unittest.TestCase):
    """Test EntryMapper.reconcile and friends."""

    def setUp(self):
        self.mapper = PersonMapper()
        self.entry = alice_entry()

    def test_loaded_object_needs_no_changes(self):
        person = self.mapper.to_object(self.entry)
        self.assertEqual(self.mapper.reconcile(person, self.entry), [])

    def test_reconcile(self):
        person = self.mapper.to_object(self.entry)
        person.full_name = "Alice Smith"
        person.emails = ["alice@example.com"]
        person.photo = None
        mods = self.mapper.reconcile(person, self.entry)
        self.assertEqual(
            [(m.kind, m.attribute.name) for m in mods],
            [
                (ModificationType.REPLACE, "cn"),
                (ModificationType.REPLACE, "mail"),
                (ModificationType.DELETE, "jpegPhoto"),
            ],
        )
        self.assertEqual(self.entry.get_attribute("cn").values, ["Alice Smith"])
        self.assertNotIn("jpegPhoto", self.entry)
        # Unmapped attributes are left alone.
        self.assertEqual(self.entry.get_attribute("sn").values, ["Johnson"])

    def test_reconcile_is_idempotent(self):
        person = Person(username="alice", full_name="Alice", emails=["a@example.com"])
        self.assertNotEqual(self.mapper.reconcile(person, self.entry), [])
        self.assertEqual(self.mapper.reconcile(person, self.entry), [])

    def test_reconcile_skips_read_only_attributes(self):
        person = self.mapper.to_object(self.entry)
        person.created = datetime.datetime(2000, 1, 1, tzinfo=pytz.utc)
        self.assertEqual(self.mapper.reconcile(person, self.entry), [])
        self.assertEqual(
            self.entry.get_attribute("createTimestamp").values, ["20240115120000Z"]
        )

    def test_reconcile_logs_no_changes(self):
        person = self.mapper.to_object(self.entry)
        with self.assertLogs("django-ldapmapper", level="DEBUG") as logs:
            self.mapper.reconcile(person, self.entry)
        self.assertIn("ldapmapper.mapper.reconcile.no-changes", logs.output[0])

    def test_reconcile_errors(self):
        with pytest.raises(ValueError):
            self.mapper.reconcile(None, self.entry)
        with pytest.raises(ValueError):
            self.mapper.reconcile(Person(username="alice"), None)

    def test_modify_request(self):
        person = self.mapper.to_object(self.entry)
        person.uid_number = 2002
        request = self.mapper.modify_request(person, self.entry)
        self.assertEqual(request.dn, "uid=alice,ou=people,dc=example,dc=com")
        self.assertEqual(request.modlist, [(ldap.MOD_REPLACE, "uidNumber", [b"2002"])])

    def test_new_entry(self):
        person = Person(
            username="bob",
            full_name="Bob Smith",
            emails=["bob@example.com"],
            uid_number=1002,
        )
        entry = self.mapper.new_entry(person)
        self.assertEqual(entry.dn, "uid=bob,ou=people,dc=example,dc=com")
        self.assertEqual(
            entry.to_add_modlist(),
            [
                ("objectClass", [b"top", b"inetOrgPerson"]),
                ("uid", [b"bob"]),
                ("cn", [b"Bob Smith"]),
                ("mail", [b"bob@example.com"]),
                ("uidNumber", [b"1002"]),
            ],
        )
        self.assertEqual(self.mapper.reconcile(person, entry), [])

    def test_bare_string_in_multivalued_field(self):
        person = self.mapper.to_object(self.entry)
        person.emails = "alice@example.com"
        mods = self.mapper.reconcile(person, self.entry)
        self.assertEqual(mods[0].attribute.values, ["alice@example.com"])

    def test_binary_value_read_back_as_text(self):
        entry = LdapEntry.from_db(
            (
                "uid=carol,ou=people,dc=example,dc=com",
                {"uid": [b"carol"], "jpegPhoto": [b"abc"]},
            )
        )
        person = self.mapper.to_object(entry)
        self.assertEqual(person.photo, b"abc")
        self.assertEqual(self.mapper.reconcile(person, entry), [])
        person.photo = b"\x00\x01"
        mods = self.mapper.reconcile(person, entry)
        self.assertEqual(mods[0].kind, ModificationType.REPLACE)
        self.assertEqual(mods[0].attribute.to_db(), [b"\x00\x01"])


class TestBooleanAttribute(unittest.TestCase):
    """Test a boolean attribute through a mapper."""

    def test_round_trip(self):
        class AccountMapper(EntryMapper):
            uid = CharAttribute(field_name="username")
            nsAccountLock = BooleanAttribute(field_name="locked")

            class Meta:
                basedn = "dc=example,dc=com"
                rdn_attribute = "uid"

        class Account:
            username = "alice"
            locked = True

        account = Account()
        entry = AccountMapper().new_entry(account)
        self.assertEqual(entry.get_attribute("nsAccountLock").values, ["true"])
        account.locked = False
        mods = AccountMapper().reconcile(account, entry)
        self.assertEqual(mods[0].attribute.values, ["false"])
