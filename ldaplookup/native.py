"""
The native backend: search Active Directory through ``Wldap32.dll``.

This is the backend used on Windows when no server or credentials are
configured.  It binds with the security context of the current process
(``LDAP_AUTH_NEGOTIATE`` with no identity), so whoever runs the program is who
searches.

Every native handle is released exactly once, on every exit path, finer
handles before the coarser ones that produced them:

* attribute name buffers and value arrays, right after use;
* the per-entry attribute iteration state, when the attribute walk of an entry
  ends, normally or not;
* the search message, then the session, when the search is done.

Note:
    This backend always requests :py:data:`NATIVE_ATTRIBUTES`, not the
    attribute list of the caller's model.  Fields reading other attributes
    stay empty.
"""

import logging
from collections.abc import Iterator
from contextlib import closing, contextmanager
from typing import TYPE_CHECKING, Any

from .config import Config
from .exceptions import NativeError, SearchResultError, SizeLimitExceeded
from .results import Materializer
from .utils import domain_to_dn, filter_to_str
from .wldap32 import (
    LDAP_AUTH_NEGOTIATE,
    LDAP_OPT_OFF,
    LDAP_OPT_PROTOCOL_VERSION,
    LDAP_OPT_REFERRALS,
    LDAP_OPT_SIZELIMIT,
    LDAP_OPT_TIMELIMIT,
    LDAP_SIZELIMIT_EXCEEDED,
    LDAP_SUCCESS,
    LDAP_VERSION3,
    Wldap32,
)

if TYPE_CHECKING:
    from ldap_filter import Filter

logger = logging.getLogger("django-ldaplookup")

#: The attributes the native backend requests, whatever the model asks for
NATIVE_ATTRIBUTES: tuple[str, ...] = (
    "objectSid",
    "displayName",
    "objectCategory",
    "sAMAccountType",
    "name",
    "userPrincipalName",
    "mail",
)
#: This attribute is read as binary, not as text
SID_ATTRIBUTE = "objectSid"
#: Return codes that don't abort a search
TOLERATED_CODES = (LDAP_SUCCESS, LDAP_SIZELIMIT_EXCEEDED)


class NativeBackend:
    """
    Search Active Directory with the native Windows directory API.

    Args:
        config: a config as returned by
            :py:meth:`~ldaplookup.config.Config.with_defaults`.  ``host`` may
            be empty to let Windows pick a domain controller.

    Keyword Args:
        library: the :py:class:`~ldaplookup.wldap32.Wldap32` binding to use;
            loaded on first search by default

    """

    def __init__(self, config: Config, library: Wldap32 | None = None) -> None:
        self.config = config
        self.logger = logger
        self._library = library

    def __repr__(self) -> str:
        return f"<NativeBackend: {self.config.host or '(default)'}>"

    @property
    def library(self) -> Wldap32:
        if self._library is None:
            self._library = Wldap32()
        return self._library

    def check(self, function: str, code: int) -> None:
        """
        Raise :py:exc:`~ldaplookup.exceptions.NativeError` unless ``code`` is
        ``LDAP_SUCCESS``.

        Args:
            function: the name of the native function that returned ``code``
            code: its return code

        """
        if code != LDAP_SUCCESS:
            raise NativeError(function, code)

    @contextmanager
    def session(self) -> Iterator[int]:
        """
        Open, configure, connect and bind a native session; unbind it on exit.

        Raises:
            NativeError: any step of the setup failed

        Yields:
            The session handle.

        """
        lib = self.library
        config = self.config
        ld = lib.init(config.host or None, config.port)
        if not ld:
            raise NativeError("ldap_init", lib.get_last_error())
        try:
            self.check(
                "ldap_set_option",
                lib.set_option(ld, LDAP_OPT_PROTOCOL_VERSION, LDAP_VERSION3),
            )
            self.check(
                "ldap_set_option",
                lib.set_option(ld, LDAP_OPT_SIZELIMIT, config.sizelimit),
            )
            self.check(
                "ldap_set_option",
                lib.set_option(ld, LDAP_OPT_TIMELIMIT, config.timelimit),
            )
            if config.only_current_domain:
                self.check(
                    "ldap_set_option",
                    lib.set_option(ld, LDAP_OPT_REFERRALS, LDAP_OPT_OFF),
                )
            self.check("ldap_connect", lib.connect(ld))
            # No identity: authenticate as the current process
            self.check("ldap_bind_s", lib.bind_s(ld, None, None, LDAP_AUTH_NEGOTIATE))
            self.logger.debug(
                "ldaplookup.native.bind.success host=%s", config.host or "(default)"
            )
            yield ld
        finally:
            lib.unbind(ld)

    @contextmanager
    def search_message(
        self, ld: int, basedn: str, searchfilter: str
    ) -> Iterator[tuple[int, int]]:
        """
        Run the search; free the result message on exit.

        Raises:
            NativeError: the search returned a code we can't tolerate

        Yields:
            The result message handle and the search return code.

        """
        lib = self.library
        code, msg = lib.search_s(
            ld, basedn, self.config.scope, searchfilter, list(NATIVE_ATTRIBUTES)
        )
        try:
            if code not in TOLERATED_CODES:
                raise NativeError("ldap_search_s", code)
            yield msg, code
        finally:
            if msg:
                lib.msgfree(msg)

    def entries(self, ld: int, msg: int) -> Iterator[int]:
        """
        Walk the entries of a result message.  Entries belong to the message
        and are not freed separately.
        """
        lib = self.library
        entry = lib.first_entry(ld, msg)
        while entry:
            yield entry
            entry = lib.next_entry(ld, entry)

    def attributes(self, ld: int, entry: int) -> Iterator[tuple[str, int]]:
        """
        Walk the attributes of one entry.

        Use this with :py:func:`contextlib.closing` so that the iteration
        state is released even if the walk is abandoned.

        Yields:
            The attribute name and its native name buffer.  The buffer is
            freed as soon as the consumer moves on.

        """
        lib = self.library
        name, ber = lib.first_attribute(ld, entry)
        try:
            while name:
                try:
                    yield lib.attribute_name(name), name
                finally:
                    lib.memfree(name)
                name = lib.next_attribute(ld, entry, ber)
        finally:
            if ber:
                lib.ber_free(ber)

    def text_value(self, ld: int, entry: int, name: int) -> str | None:
        """
        Return the first text value of an attribute.

        Returns:
            The value, or ``None`` if the attribute has no values.

        """
        lib = self.library
        values = lib.get_values(ld, entry, name)
        if not values:
            return None
        try:
            if lib.count_values(values) == 0:
                return None
            return lib.first_value(values).decode(lib.encoding, errors="replace")
        finally:
            lib.value_free(values)

    def binary_value(self, ld: int, entry: int, name: int) -> bytes | None:
        """
        Return the first binary value of an attribute.

        Returns:
            The raw bytes, or ``None`` if the attribute has no values.

        """
        lib = self.library
        values = lib.get_values_len(ld, entry, name)
        if not values:
            return None
        try:
            if lib.count_values_len(values) == 0:
                return None
            return lib.first_value_len(values)
        finally:
            lib.value_free_len(values)

    def search(
        self, domain: str, out: list[Any], searchfilter: "str | Filter"
    ) -> None:
        """
        Search ``domain`` and append one record per entry found to ``out``.

        Args:
            domain: the DNS domain to search; ``example.com`` searches under
                ``DC=example,DC=com``
            out: the output list: a
                :py:class:`~ldaplookup.results.ResultList`
            searchfilter: the LDAP filter, as a string or as an
                :py:mod:`ldap_filter` filter

        Raises:
            SearchResultError: ``out`` can't hold the results
            NativeError: a native call failed
            SizeLimitExceeded: there were more entries than the size limit;
                ``out`` holds the ones we received

        """
        basedn = domain_to_dn(domain, "DC")
        try:
            res = Materializer(out)
        except SearchResultError as e:
            msg = f"ldap_windows search: failed to make search result: {e}"
            raise type(e)(msg) from e
        ignored = set(res.attributes) - set(NATIVE_ATTRIBUTES)
        if ignored:
            self.logger.debug(
                "ldaplookup.native.search.unrequested-attributes attributes=%s",
                ",".join(sorted(ignored)),
            )
        searchfilter = filter_to_str(searchfilter)
        self.logger.debug(
            "ldaplookup.native.search.start basedn=%s filter=%s",
            basedn,
            searchfilter,
        )
        count = 0
        with (
            self.session() as ld,
            self.search_message(ld, basedn, searchfilter) as (msg, code),
        ):
            for entry in self.entries(ld, msg):
                item = res.new_record()
                with closing(self.attributes(ld, entry)) as attributes:
                    for attribute, name in attributes:
                        value: str | bytes | None
                        if attribute == SID_ATTRIBUTE:
                            value = self.binary_value(ld, entry, name)
                        else:
                            value = self.text_value(ld, entry, name)
                        if value is not None:
                            res.set_field(item, attribute, value)
                res.append(item)
                count += 1
        if code == LDAP_SIZELIMIT_EXCEEDED:
            self.logger.warning(
                "ldaplookup.native.search.sizelimit basedn=%s filter=%s count=%d",
                basedn,
                searchfilter,
                count,
            )
            raise SizeLimitExceeded(out)
        self.logger.debug(
            "ldaplookup.native.search.done basedn=%s count=%d", basedn, count
        )
