"""
Choosing a backend.

There are exactly two ways to search:

* :py:class:`~ldaplookup.connection.LdapBackend` when the config names a host,
  a bind identity and a bind credential;
* :py:class:`~ldaplookup.native.NativeBackend` when the config names no host
  and we run on Windows, where the native directory API can use the
  credentials of the current process.

Both have the same ``search(domain, out, filter)`` method::

    from ldaplookup import backends
    from ldaplookup.config import Config
    from ldaplookup.results import ResultList

    backend = backends.open(Config(host="dc1.example.com", user=..., password=...))
    users = ResultList(User)
    backend.search("example.com", users, "(sAMAccountName=jdoe)")
"""

import logging
import sys

from .config import Config
from .connection import LdapBackend
from .exceptions import Unsupported
from .native import NativeBackend

logger = logging.getLogger("django-ldaplookup")

#: The two backend types
Backend = LdapBackend | NativeBackend


def native_supported() -> bool:
    """
    Return True if this platform has the native directory API.
    """
    return sys.platform == "win32"


def open(config: Config) -> Backend:  # noqa: A001
    """
    Return the backend that can search with ``config``.

    Defaults are applied to ``config`` first: port 389, subtree scope, a size
    limit of 50 entries and a time limit of 10 seconds.

    Args:
        config: the search configuration

    Raises:
        Unsupported: neither backend can search with this config here

    Returns:
        The backend.  The choice is fixed for its lifetime.

    """
    config = config.with_defaults()
    if config.has_credentials:
        logger.debug("ldaplookup.backends.open backend=ldap host=%s", config.host)
        return LdapBackend(config)
    if not config.host and native_supported():
        logger.debug("ldaplookup.backends.open backend=native")
        return NativeBackend(config)
    raise Unsupported


def open_from_settings(key: str = "default") -> Backend:
    """
    Return the backend for ``settings.LDAP_SERVERS[key]``.

    Keyword Args:
        key: the server key in ``settings.LDAP_SERVERS``

    Raises:
        django.core.exceptions.ImproperlyConfigured: the settings are missing
            or invalid
        Unsupported: neither backend can search with these settings here

    Returns:
        The backend.

    """
    return open(Config.from_settings(key))
