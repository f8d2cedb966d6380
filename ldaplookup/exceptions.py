"""
Exceptions raised by django-ldaplookup.

Every error that a search can raise derives from :py:class:`LdapLookupError`,
so callers that don't care about the details can catch that one class.
Problems with Django settings or with a model definition are reported with
Django's :py:class:`~django.core.exceptions.ImproperlyConfigured` instead.
"""

from typing import Any


class LdapLookupError(Exception):
    """Base class for all django-ldaplookup errors."""


class Unsupported(LdapLookupError):
    """
    Raised by :py:func:`ldaplookup.backends.open` when neither backend can be
    used: we have no host and credentials for a protocol connection, and the
    current platform has no native directory API.
    """

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(
            msg
            or "Provided parameters are unsupported on current operating system"
        )


# -----------------------
# Result shape errors
# -----------------------


class SearchResultError(LdapLookupError):
    """
    The output argument given to a search can't hold the results.  Only raised
    when the :py:class:`~ldaplookup.results.Materializer` is built, never while
    entries are being read.
    """


class NeedPointer(SearchResultError):
    """The output argument can't be filled in place, e.g. ``None`` or a tuple."""

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or "Bad result type. Required a mutable list")


class BadType(SearchResultError):
    """
    The output argument is mutable but is not a list of records, or it is a
    list but we don't know what to put in it.
    """

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(
            msg or "Bad result type. Required a ResultList or a list and a model"
        )


class BadElement(SearchResultError):
    """The element type of the output list is not a Model subclass."""

    def __init__(self, msg: str | None = None) -> None:
        super().__init__(msg or "Bad result element type. Required Model subclass")


# -----------------------
# Transport errors
# -----------------------


class ConnectError(LdapLookupError):
    """We could not reach the directory server."""


class BindError(LdapLookupError):
    """The directory server refused our bind."""


class SearchError(LdapLookupError):
    """The search request failed for a reason other than the size limit."""


class SizeLimitExceeded(LdapLookupError):
    """
    The directory returned more entries than the configured size limit allows.

    This is not a hard failure: the entries received before the limit was hit
    have already been appended to the caller's output list, which is also
    available here as :py:attr:`results`.

    Args:
        results: the (partial) output list of the search

    """

    def __init__(self, results: list[Any] | None = None) -> None:
        super().__init__("Size Limit Exceeded")
        #: The partial results, the same list the caller passed in.
        self.results: list[Any] = results if results is not None else []


class NativeError(LdapLookupError):
    """
    A ``Wldap32.dll`` call returned a code we can't tolerate.

    Args:
        function: name of the native function that failed
        code: the native return code

    """

    #: Names for the native return codes we know about.
    CODE_NAMES: dict[int, str] = {  # noqa: RUF012
        0x00: "LDAP_SUCCESS",
        0x04: "LDAP_SIZELIMIT_EXCEEDED",
        0x31: "LDAP_INVALID_CREDENTIALS",
        0x51: "LDAP_SERVER_DOWN",
        0x59: "LDAP_PARAM_ERROR",
    }

    def __init__(self, function: str, code: int) -> None:
        self.function = function
        self.code = code
        super().__init__(f"{function} failed with {self.code_name(code)}")

    @classmethod
    def code_name(cls, code: int) -> str:
        """
        Return a readable name for a native return code.

        Args:
            code: the native return code

        Returns:
            The symbolic name, or ``UNKNOWN: <hex>`` for codes we don't know.

        """
        return cls.CODE_NAMES.get(code, f"UNKNOWN: {code:x}")
