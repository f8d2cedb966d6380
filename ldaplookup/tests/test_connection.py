# mypy: disable-error-code="attr-defined"
# type: ignore
"""
Tests for the protocol backend.

The happy path runs against python-ldap-faker; failure paths use a mocked
LDAPObject so that we can make the server misbehave on cue.
"""

import unittest
from unittest.mock import MagicMock, patch

import ldap
from django.conf import settings
from ldap_filter import Filter
from ldap_faker.unittest import LDAPFakerMixin

from ldaplookup.config import Config
from ldaplookup.connection import LdapBackend, get_attr
from ldaplookup.exceptions import (
    BindError,
    ConnectError,
    BadType,
    NeedPointer,
    SearchError,
    SizeLimitExceeded,
)
from ldaplookup.fields import CharField, SIDField
from ldaplookup.models import Model
from ldaplookup.results import ResultList

if not settings.configured:
    settings.configure()


class User(Model):
    dn = CharField(db_column="DN")
    name = CharField(db_column="cn")
    email = CharField(db_column="mail")
    sid = SIDField(db_column="objectSid")


SID_BYTES = bytes([1, 1]) + (5).to_bytes(6, "big") + (18).to_bytes(4, "little")


def make_backend(**kwargs) -> LdapBackend:
    values = {
        "host": "localhost",
        "user": "cn=admin,dc=example,dc=com",
        "password": "admin",
    }
    values.update(kwargs)
    return LdapBackend(Config(**values).with_defaults())


class TestGetAttr(unittest.TestCase):
    """Test reading one value out of a search entry."""

    def test_first_value(self):
        entry = ("cn=a,dc=example,dc=com", {"mail": [b"a@example.com", b"b@example.com"]})
        self.assertEqual(get_attr(entry, "mail"), b"a@example.com")

    def test_case_insensitive(self):
        entry = ("cn=a,dc=example,dc=com", {"displayname": [b"A"]})
        self.assertEqual(get_attr(entry, "displayName"), b"A")

    def test_missing(self):
        entry = ("cn=a,dc=example,dc=com", {})
        self.assertEqual(get_attr(entry, "mail"), b"")

    def test_no_values(self):
        entry = ("cn=a,dc=example,dc=com", {"mail": []})
        self.assertEqual(get_attr(entry, "mail"), b"")

    def test_dn(self):
        """Test that DN gives the entry's DN unless the entry has a DN attribute."""
        entry = ("cn=a,dc=example,dc=com", {})
        self.assertEqual(get_attr(entry, "DN"), "cn=a,dc=example,dc=com")
        entry = ("cn=a,dc=example,dc=com", {"dn": [b"other"]})
        self.assertEqual(get_attr(entry, "DN"), b"other")


class TestLdapBackendWithFaker(LDAPFakerMixin, unittest.TestCase):
    """Search a fake directory server."""

    ldap_modules = ["ldaplookup.connection"]

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.test_objects = [
            [
                "dc=example,dc=com",
                {
                    "dc": [b"example"],
                    "objectclass": [b"domain", b"top"],
                },
            ],
            [
                "cn=admin,dc=example,dc=com",
                {
                    "cn": [b"admin"],
                    "userPassword": [b"admin"],
                    "objectclass": [b"simpleSecurityObject", b"organizationalRole", b"top"],
                },
            ],
            [
                "cn=alice,dc=example,dc=com",
                {
                    "cn": [b"alice"],
                    "mail": [b"alice@example.com"],
                    "objectSid": [SID_BYTES],
                    "objectclass": [b"user", b"top"],
                },
            ],
            [
                "cn=bob,dc=example,dc=com",
                {
                    "cn": [b"bob"],
                    "objectclass": [b"user", b"top"],
                },
            ],
        ]

    def setUp(self):
        super().setUp()
        self.server_factory.default.raw_objects.clear()
        self.server_factory.default.objects.clear()
        for dn, attrs in self.test_objects:
            self.server_factory.default.register_object((dn, attrs))

    def test_search(self):
        """Test that each entry becomes one record."""
        users = ResultList(User)
        make_backend().search("example.com", users, "(objectclass=user)")
        self.assertEqual(len(users), 2)
        by_name = {user.name: user for user in users}
        self.assertEqual(set(by_name), {"alice", "bob"})
        alice = by_name["alice"]
        self.assertEqual(alice.dn, "cn=alice,dc=example,dc=com")
        self.assertEqual(alice.email, "alice@example.com")
        self.assertEqual(str(alice.sid), "S-1-5-18")
        bob = by_name["bob"]
        self.assertEqual(bob.email, "")
        self.assertEqual(str(bob.sid), "")

    def test_search_appends(self):
        """Test that existing records in the output list are kept."""
        users = ResultList(User, [User(name="carol")])
        make_backend().search("example.com", users, "(cn=alice)")
        self.assertEqual([user.name for user in users], ["carol", "alice"])

    def test_no_match(self):
        users = ResultList(User)
        make_backend().search("example.com", users, "(cn=nobody)")
        self.assertEqual(users, [])

    def test_bind_and_unbind(self):
        """Test that we bind, and unbind when done."""
        make_backend().search("example.com", ResultList(User), "(cn=alice)")
        self.assertLDAPConnectionMethodCalled("simple_bind_s")
        self.assertLDAPConnectionMethodCalled("unbind_s")

    def test_wrong_password(self):
        with self.assertRaises(BindError):
            make_backend(password="wrong").search(
                "example.com", ResultList(User), "(cn=alice)"
            )


class LdapBackendMockMixin:
    """Replace ldap.initialize with a mock LDAPObject."""

    def setUp(self):
        super().setUp()
        self.connection = MagicMock()
        self.connection.search_ext.return_value = 1
        patcher = patch("ldaplookup.connection.ldap.initialize", return_value=self.connection)
        self.mock_initialize = patcher.start()
        self.addCleanup(patcher.stop)


class TestLdapBackendConnect(LdapBackendMockMixin, unittest.TestCase):
    """Test connection setup and failures."""

    def test_url(self):
        backend = make_backend(port=3268)
        self.assertEqual(backend.url, "ldap://localhost:3268")
        backend.connect()
        self.mock_initialize.assert_called_once_with("ldap://localhost:3268")

    def test_options(self):
        make_backend(timelimit=7).connect()
        self.connection.set_option.assert_any_call(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)
        self.connection.set_option.assert_any_call(ldap.OPT_REFERRALS, 1)
        self.connection.set_option.assert_any_call(ldap.OPT_NETWORK_TIMEOUT, 7.0)
        self.connection.simple_bind_s.assert_called_once_with(
            "cn=admin,dc=example,dc=com", "admin"
        )

    def test_only_current_domain(self):
        """Test that referral chasing is turned off."""
        make_backend(only_current_domain=True).connect()
        self.connection.set_option.assert_any_call(ldap.OPT_REFERRALS, 0)

    def test_server_down(self):
        self.connection.simple_bind_s.side_effect = ldap.SERVER_DOWN(
            {"desc": "Can't contact LDAP server"}
        )
        with self.assertRaises(ConnectError) as cm:
            make_backend().search("example.com", ResultList(User), "(cn=alice)")
        self.assertIn("ldap://localhost:389", str(cm.exception))
        self.assertIsInstance(cm.exception.__cause__, ldap.SERVER_DOWN)
        self.connection.unbind_s.assert_called_once_with()
        self.connection.search_ext.assert_not_called()

    def test_bind_failure(self):
        self.connection.simple_bind_s.side_effect = ldap.INVALID_CREDENTIALS(
            {"desc": "Invalid credentials"}
        )
        with self.assertRaises(BindError) as cm:
            make_backend().search("example.com", ResultList(User), "(cn=alice)")
        self.assertIn("cn=admin,dc=example,dc=com", str(cm.exception))
        self.connection.unbind_s.assert_called_once_with()
        self.connection.search_ext.assert_not_called()

    def test_bad_output_never_connects(self):
        with self.assertRaises(BadType) as cm:
            make_backend().search("example.com", User(), "(cn=alice)")
        self.assertIn("failed to make search result", str(cm.exception))
        with self.assertRaises(NeedPointer):
            make_backend().search("example.com", None, "(cn=alice)")
        self.mock_initialize.assert_not_called()


class TestLdapBackendSearch(LdapBackendMockMixin, unittest.TestCase):
    """Test the search request and result handling."""

    alice = ("cn=alice,dc=example,dc=com", {"cn": [b"alice"], "mail": [b"alice@example.com"]})
    bob = ("cn=bob,dc=example,dc=com", {"cn": [b"bob"]})

    def test_search_request(self):
        """Test the arguments of the search request."""
        self.connection.result3.return_value = (ldap.RES_SEARCH_RESULT, [], 1, [])
        backend = make_backend(sizelimit=20, timelimit=5)
        backend.search("ad.example.com", ResultList(User), "(cn=alice)")
        self.connection.search_ext.assert_called_once_with(
            "dc=ad,dc=example,dc=com",
            ldap.SCOPE_SUBTREE,
            "(cn=alice)",
            ["DN", "cn", "mail", "objectSid"],
            timeout=5,
            sizelimit=20,
        )
        self.connection.result3.assert_called_once_with(1, 0)
        self.connection.unbind_s.assert_called_once_with()

    def test_entries_one_at_a_time(self):
        self.connection.result3.side_effect = [
            (ldap.RES_SEARCH_ENTRY, [self.alice], 1, []),
            (ldap.RES_SEARCH_REFERENCE, [(None, ["ldap://other.example.com/"])], 1, []),
            (ldap.RES_SEARCH_ENTRY, [self.bob], 1, []),
            (ldap.RES_SEARCH_RESULT, [], 1, []),
        ]
        users = ResultList(User)
        make_backend().search("example.com", users, "(objectClass=user)")
        self.assertEqual(
            users,
            [
                User(dn="cn=alice,dc=example,dc=com", name="alice", email="alice@example.com"),
                User(dn="cn=bob,dc=example,dc=com", name="bob"),
            ],
        )

    def test_size_limit(self):
        """Test that entries before the size limit are kept."""
        self.connection.result3.side_effect = [
            (ldap.RES_SEARCH_ENTRY, [self.alice], 1, []),
            (ldap.RES_SEARCH_ENTRY, [self.bob], 1, []),
            ldap.SIZELIMIT_EXCEEDED({"desc": "Size limit exceeded"}),
        ]
        users = ResultList(User)
        with (
            self.assertLogs("django-ldaplookup", level="WARNING"),
            self.assertRaises(SizeLimitExceeded) as cm,
        ):
            make_backend(sizelimit=2).search("example.com", users, "(objectClass=user)")
        self.assertEqual(str(cm.exception), "Size Limit Exceeded")
        self.assertIs(cm.exception.results, users)
        self.assertEqual([user.name for user in users], ["alice", "bob"])
        self.connection.unbind_s.assert_called_once_with()

    def test_search_failure(self):
        self.connection.search_ext.side_effect = ldap.NO_SUCH_OBJECT(
            {"desc": "No such object"}
        )
        users = ResultList(User)
        with self.assertRaises(SearchError):
            make_backend().search("example.com", users, "(cn=alice)")
        self.assertEqual(users, [])
        self.connection.unbind_s.assert_called_once_with()

    def test_result_failure(self):
        self.connection.result3.side_effect = ldap.TIMEOUT({"desc": "Timed out"})
        with self.assertRaises(SearchError):
            make_backend().search("example.com", ResultList(User), "(cn=alice)")
        self.connection.unbind_s.assert_called_once_with()

    def test_filter_object(self):
        """Test that ldap_filter filters are sent as strings."""
        self.connection.result3.return_value = (ldap.RES_SEARCH_RESULT, [], 1, [])
        make_backend().search(
            "example.com", ResultList(User), Filter.attribute("cn").equal_to("alice")
        )
        self.assertEqual(self.connection.search_ext.call_args.args[2], "(cn=alice)")
