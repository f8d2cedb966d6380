"""
The protocol backend: search any LDAP server with python-ldap.

Every search opens its own connection, binds with the configured identity,
sends one search request and unbinds again, whatever happens in between.
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import TYPE_CHECKING, Any

import ldap
from ldap.cidict import cidict

from .config import Config
from .exceptions import (
    BindError,
    ConnectError,
    SearchError,
    SearchResultError,
    SizeLimitExceeded,
)
from .results import Materializer
from .typing import LDAPData
from .utils import domain_to_dn, filter_to_str

if TYPE_CHECKING:
    from ldap_filter import Filter

logger = logging.getLogger("django-ldaplookup")

#: The pseudo-attribute that gives an entry's distinguished name
DN_ATTRIBUTE = "DN"


def connected(func: Callable) -> Callable:
    """
    Decorator for :py:class:`LdapBackend` methods that talk to the server.

    Opens and binds a connection, passes it to ``func`` as its first
    argument after ``self``, and unbinds it when ``func`` returns or raises.

    Args:
        func: The method to wrap.

    Returns:
        The wrapped method.

    """

    @wraps(func)
    def wrapper(self, *args, **kwargs) -> Any:
        connection = self.connect()
        try:
            return func(self, connection, *args, **kwargs)
        finally:
            connection.unbind_s()

    return wrapper


def get_attr(entry: LDAPData, name: str) -> bytes | str:
    """
    Return the first value of attribute ``name`` of ``entry``.

    Attribute names are matched case-insensitively, since the server may not
    return them in the case we asked for.  Only the first value of a
    multi-valued attribute is used.

    Args:
        entry: a ``(dn, attributes)`` tuple
        name: the attribute name; ``DN`` gives the entry's DN

    Returns:
        The first value, or ``b""`` if the entry has no such attribute.

    """
    dn, attrs = entry
    values = cidict(attrs).get(name)
    if values is not None:
        return values[0] if values else b""
    if name == DN_ATTRIBUTE:
        return dn
    return b""


class LdapBackend:
    """
    Search a directory over the LDAP protocol.

    Args:
        config: a config with host, user and password set, as returned by
            :py:meth:`~ldaplookup.config.Config.with_defaults`

    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.logger = logger

    def __repr__(self) -> str:
        return f"<LdapBackend: {self.url}>"

    @property
    def url(self) -> str:
        return f"ldap://{self.config.host}:{self.config.port}"

    def connect(self) -> ldap.ldapobject.LDAPObject:
        """
        Create, configure and bind a new connection.

        Raises:
            ConnectError: the server can't be reached
            BindError: the server rejected our bind

        Returns:
            A bound LDAPObject.

        """
        config = self.config
        ldap_object = ldap.initialize(self.url)
        try:
            ldap_object.set_option(ldap.OPT_PROTOCOL_VERSION, ldap.VERSION3)
            if config.only_current_domain:
                ldap_object.set_option(ldap.OPT_REFERRALS, 0)
            else:
                ldap_object.set_option(ldap.OPT_REFERRALS, 1)
            ldap_object.set_option(ldap.OPT_NETWORK_TIMEOUT, float(config.timelimit))
            ldap_object.simple_bind_s(config.user, config.password)
        except ldap.SERVER_DOWN as e:
            ldap_object.unbind_s()
            msg = f"ldap connect: failed to connect to {self.url}: {e}"
            raise ConnectError(msg) from e
        except ldap.LDAPError as e:
            ldap_object.unbind_s()
            msg = f"ldap connect: initial bind for user {config.user!r} failed: {e}"
            raise BindError(msg) from e
        self.logger.debug(
            "ldaplookup.connection.bind.success url=%s user=%s", self.url, config.user
        )
        return ldap_object

    @connected
    def _search(
        self,
        connection: ldap.ldapobject.LDAPObject,
        basedn: str,
        searchfilter: str,
        attributes: list[str],
    ) -> tuple[list[LDAPData], bool]:
        """
        Send one search request and collect the entries the server returns.

        Args:
            connection: the bound connection, supplied by :py:func:`connected`
            basedn: The base DN to search from.
            searchfilter: The LDAP search filter string.
            attributes: The attributes to retrieve.

        Raises:
            SearchError: the search failed for a reason other than the size
                limit

        Returns:
            The entries, and whether the size limit cut the result short.

        """
        results: list[LDAPData] = []
        truncated = False
        try:
            msgid = connection.search_ext(
                basedn,
                self.config.scope,
                searchfilter,
                attributes,
                timeout=self.config.timelimit,
                sizelimit=self.config.sizelimit,
            )
            while True:
                rtype, rdata, _rmsgid, _serverctrls = connection.result3(msgid, 0)
                for dn, attrs in rdata:
                    # AD returns referrals (dn=None) that we want to ignore
                    if dn is not None and isinstance(attrs, dict):
                        results.append((dn, attrs))
                if rtype not in (ldap.RES_SEARCH_ENTRY, ldap.RES_SEARCH_REFERENCE):
                    break
        except ldap.SIZELIMIT_EXCEEDED:
            truncated = True
        except ldap.LDAPError as e:
            msg = f"ldap search: {e}"
            raise SearchError(msg) from e
        return results, truncated

    def search(
        self, domain: str, out: list[Any], searchfilter: "str | Filter"
    ) -> None:
        """
        Search ``domain`` and append one record per entry found to ``out``.

        Args:
            domain: the DNS domain to search; ``example.com`` searches under
                ``dc=example,dc=com``
            out: the output list: a
                :py:class:`~ldaplookup.results.ResultList`
            searchfilter: the LDAP filter, as a string or as an
                :py:mod:`ldap_filter` filter

        Raises:
            SearchResultError: ``out`` can't hold the results
            ConnectError: the server can't be reached
            BindError: the server rejected our bind
            SearchError: the search failed
            SizeLimitExceeded: there were more entries than the size limit;
                ``out`` holds the ones we received

        """
        basedn = domain_to_dn(domain)
        try:
            res = Materializer(out)
        except SearchResultError as e:
            msg = f"ldap search: failed to make search result: {e}"
            raise type(e)(msg) from e
        searchfilter = filter_to_str(searchfilter)
        self.logger.debug(
            "ldaplookup.connection.search.start basedn=%s filter=%s",
            basedn,
            searchfilter,
        )
        entries, truncated = self._search(basedn, searchfilter, res.attributes)
        for entry in entries:
            item = res.new_record()
            for attribute in res.attributes:
                res.set_field(item, attribute, get_attr(entry, attribute))
            res.append(item)
        if truncated:
            self.logger.warning(
                "ldaplookup.connection.search.sizelimit basedn=%s filter=%s count=%d",
                basedn,
                searchfilter,
                len(entries),
            )
            raise SizeLimitExceeded(out)
        self.logger.debug(
            "ldaplookup.connection.search.done basedn=%s count=%d",
            basedn,
            len(entries),
        )
