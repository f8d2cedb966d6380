"""
Search configuration.

A :py:class:`Config` says where and how to search.  Build one directly, or
from Django settings::

    LDAP_SERVERS = {
        "default": {
            "host": "dc1.example.com",
            "port": 389,
            "user": "svc-lookup@example.com",
            "password": "secret",
            "scope": "subtree",
            "sizelimit": 50,
            "timelimit": 10,
            "only_current_domain": False,
        },
        # no host, user or password: use the native Windows API with the
        # credentials of the current process
        "native": {},
    }

and ``Config.from_settings("default")``.
"""

from dataclasses import dataclass, replace
from typing import Any

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

#: The default LDAP port
LDAP_PORT = 389

# These match ldap.SCOPE_* and the LDAP_SCOPE_* constants of Wldap32
SCOPE_BASE = 0
SCOPE_ONELEVEL = 1
SCOPE_SUBTREE = 2

#: Scope names accepted in settings
SCOPE_NAMES: dict[str, int] = {
    "base": SCOPE_BASE,
    "onelevel": SCOPE_ONELEVEL,
    "one-level": SCOPE_ONELEVEL,
    "subtree": SCOPE_SUBTREE,
}

#: The default maximum number of entries a search returns
DEFAULT_SIZELIMIT = 50
#: The default search time limit, in seconds
DEFAULT_TIMELIMIT = 10


@dataclass(frozen=True)
class Config:
    """
    Directory search configuration.  Immutable; :py:func:`ldaplookup.backends.open`
    fills in the defaults once, when the backend is built.
    """

    #: The directory server.  Empty means "the native API's default".
    host: str = ""
    #: The server port.  0 means :py:data:`LDAP_PORT`.
    port: int = 0
    #: The bind identity
    user: str = ""
    #: The bind credential
    password: str = ""
    #: One of :py:data:`SCOPE_BASE`, :py:data:`SCOPE_ONELEVEL`,
    #: :py:data:`SCOPE_SUBTREE`
    scope: int = SCOPE_SUBTREE
    #: Maximum number of entries to return.  0 means :py:data:`DEFAULT_SIZELIMIT`.
    sizelimit: int = 0
    #: Search time limit in seconds.  0 means :py:data:`DEFAULT_TIMELIMIT`.
    timelimit: int = 0
    #: Don't chase referrals to other domains
    only_current_domain: bool = False

    def __repr__(self) -> str:
        return (
            f"Config(host={self.host!r}, port={self.port}, user={self.user!r}, "
            f"scope={self.scope}, sizelimit={self.sizelimit}, "
            f"timelimit={self.timelimit}, "
            f"only_current_domain={self.only_current_domain})"
        )

    @property
    def has_credentials(self) -> bool:
        """
        True if we have everything a protocol connection needs: host, bind
        identity and bind credential.
        """
        return bool(self.host and self.user and self.password)

    def with_defaults(self) -> "Config":
        """
        Return a copy of this config with defaults in place of unset values.

        Returns:
            A new :py:class:`Config`.

        """
        return replace(
            self,
            port=self.port or LDAP_PORT,
            scope=self.scope if self.scope in SCOPE_NAMES.values() else SCOPE_SUBTREE,
            sizelimit=self.sizelimit or DEFAULT_SIZELIMIT,
            timelimit=self.timelimit or DEFAULT_TIMELIMIT,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """
        Build a config from a settings dictionary.

        Args:
            data: the settings for one server

        Raises:
            ImproperlyConfigured: a value can't be converted to its type
                (an unknown scope name, a port that isn't a number), or
                ``data`` has keys we don't know about

        Returns:
            A new :py:class:`Config`.

        """
        data = dict(data)
        scope = data.pop("scope", SCOPE_SUBTREE)
        if isinstance(scope, str):
            try:
                scope = SCOPE_NAMES[scope.lower()]
            except KeyError as e:
                msg = f"Invalid scope value: {scope}"
                raise ImproperlyConfigured(msg) from e
        try:
            return cls(
                host=data.pop("host", None) or "",
                port=int(data.pop("port", None) or 0),
                user=data.pop("user", None) or "",
                password=data.pop("password", None) or "",
                scope=int(scope),
                sizelimit=int(data.pop("sizelimit", None) or 0),
                timelimit=int(data.pop("timelimit", None) or 0),
                only_current_domain=bool(data.pop("only_current_domain", False)),
                **data,
            )
        except (TypeError, ValueError) as e:
            msg = f"Invalid LDAP server settings: {e}"
            raise ImproperlyConfigured(msg) from e

    @classmethod
    def from_settings(cls, key: str = "default") -> "Config":
        """
        Build a config from ``settings.LDAP_SERVERS[key]``.

        Keyword Args:
            key: the server key in ``settings.LDAP_SERVERS``

        Raises:
            ImproperlyConfigured: ``settings.LDAP_SERVERS`` or the key is missing

        Returns:
            A new :py:class:`Config`.

        """
        try:
            servers = settings.LDAP_SERVERS
        except AttributeError as e:
            msg = "settings.LDAP_SERVERS does not exist!"
            raise ImproperlyConfigured(msg) from e
        try:
            data = servers[key]
        except KeyError as e:
            msg = f"settings.LDAP_SERVERS has no key '{key}'"
            raise ImproperlyConfigured(msg) from e
        return cls.from_dict(data)
