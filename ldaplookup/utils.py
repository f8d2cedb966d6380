"""
Small helpers shared by both backends.
"""

from typing import TYPE_CHECKING

from ldap.filter import escape_filter_chars

if TYPE_CHECKING:
    from ldap_filter import Filter


def make_dn(attribute: str, components: list[str]) -> str:
    """
    Join ``components`` into a distinguished name, prefixing each one with
    ``attribute=``.

    Example:
        >>> make_dn("dc", "example.com".split("."))
        'dc=example,dc=com'

    Args:
        attribute: the RDN attribute to use for every component; if empty, the
            components are joined as they are
        components: the RDN values, most specific first

    Returns:
        The distinguished name.

    """
    if attribute:
        components = [f"{attribute}={component}" for component in components]
    return ",".join(components)


def domain_to_dn(domain: str, attribute: str = "dc") -> str:
    """
    Turn a DNS domain name into the base DN of its directory.

    Args:
        domain: a domain like ``ad.example.com``

    Keyword Args:
        attribute: the RDN attribute; the native backend uses ``DC``

    Returns:
        The base DN, e.g. ``dc=ad,dc=example,dc=com``

    """
    return make_dn(attribute, domain.split("."))


def escape_filter(value: str) -> str:
    """
    Escape ``value`` for use inside an LDAP search filter.

    Use this on anything that came from a user before you paste it into a
    filter string.  ``\\``, ``*``, ``(``, ``)`` and NUL are replaced by their
    ``\\XX`` escapes.

    Args:
        value: the untrusted filter fragment

    Returns:
        The escaped fragment.

    """
    return escape_filter_chars(value)


def filter_to_str(searchfilter: "str | Filter") -> str:
    """
    Return ``searchfilter`` as a filter string.

    Args:
        searchfilter: a filter string, or a filter built with
            :py:mod:`ldap_filter`

    Returns:
        The filter string.

    """
    if isinstance(searchfilter, str):
        return searchfilter
    return searchfilter.to_string()
