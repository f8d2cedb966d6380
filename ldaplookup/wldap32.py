"""
A thin ctypes binding to the Windows directory library, ``Wldap32.dll``.

This module only declares the functions the native backend calls and converts
their arguments and results to plain Python values.  Handles are returned as
integers (0 for NULL) and must be released by the caller with the matching
``*free`` / ``unbind`` method; see :py:mod:`ldaplookup.native` for the code that
owns them.

The library is loaded when :py:class:`Wldap32` is instantiated, so importing
this module is safe on any platform.
"""

import ctypes
from ctypes import POINTER, c_char, c_char_p, c_int, c_ulong, c_void_p

# Authentication methods
LDAP_AUTH_OTHERKIND = 0x86
LDAP_AUTH_NEGOTIATE = LDAP_AUTH_OTHERKIND | 0x0400

# Return codes
LDAP_SUCCESS = 0x00
LDAP_SIZELIMIT_EXCEEDED = 0x04
LDAP_INVALID_CREDENTIALS = 0x31
LDAP_SERVER_DOWN = 0x51
LDAP_PARAM_ERROR = 0x59

# Options
LDAP_OPT_SIZELIMIT = 0x03
LDAP_OPT_TIMELIMIT = 0x04
LDAP_OPT_REFERRALS = 0x08
LDAP_OPT_PROTOCOL_VERSION = 0x11
LDAP_VERSION3 = 3
LDAP_OPT_OFF = 0


class berval(ctypes.Structure):  # noqa: N801
    """A counted binary value, as returned by ``ldap_get_values_len``."""

    _fields_ = [  # noqa: RUF012
        ("bv_len", c_ulong),
        ("bv_val", POINTER(c_char)),
    ]


def _handle(value: int | None) -> int:
    return value or 0


class Wldap32:
    """
    The functions of ``Wldap32.dll`` used by the native backend.

    Keyword Args:
        dll: an already loaded library; by default ``Wldap32.dll`` is loaded

    """

    #: The encoding of the strings the ANSI entry points return
    encoding: str = "mbcs"

    def __init__(self, dll: ctypes.CDLL | None = None) -> None:
        if dll is None:
            dll = ctypes.CDLL("Wldap32.dll")
        self.dll = dll
        self._declare()

    def _declare(self) -> None:  # noqa: PLR0915
        dll = self.dll
        ld = c_void_p

        dll.ldap_init.argtypes = [c_char_p, c_ulong]
        dll.ldap_init.restype = ld
        dll.LdapGetLastError.argtypes = []
        dll.LdapGetLastError.restype = c_ulong
        dll.ldap_set_option.argtypes = [ld, c_int, c_void_p]
        dll.ldap_set_option.restype = c_ulong
        dll.ldap_connect.argtypes = [ld, c_void_p]
        dll.ldap_connect.restype = c_ulong
        dll.ldap_bind_s.argtypes = [ld, c_char_p, c_char_p, c_ulong]
        dll.ldap_bind_s.restype = c_ulong
        dll.ldap_unbind.argtypes = [ld]
        dll.ldap_unbind.restype = c_ulong

        dll.ldap_search_s.argtypes = [
            ld,
            c_char_p,
            c_ulong,
            c_char_p,
            POINTER(c_char_p),
            c_ulong,
            POINTER(c_void_p),
        ]
        dll.ldap_search_s.restype = c_ulong
        dll.ldap_msgfree.argtypes = [c_void_p]
        dll.ldap_msgfree.restype = c_ulong
        dll.ldap_first_entry.argtypes = [ld, c_void_p]
        dll.ldap_first_entry.restype = c_void_p
        dll.ldap_next_entry.argtypes = [ld, c_void_p]
        dll.ldap_next_entry.restype = c_void_p

        dll.ldap_first_attribute.argtypes = [ld, c_void_p, POINTER(c_void_p)]
        dll.ldap_first_attribute.restype = c_void_p
        dll.ldap_next_attribute.argtypes = [ld, c_void_p, c_void_p]
        dll.ldap_next_attribute.restype = c_void_p
        dll.ldap_memfree.argtypes = [c_void_p]
        dll.ldap_memfree.restype = None
        dll.ber_free.argtypes = [c_void_p, c_int]
        dll.ber_free.restype = None

        dll.ldap_get_values.argtypes = [ld, c_void_p, c_void_p]
        dll.ldap_get_values.restype = POINTER(c_char_p)
        dll.ldap_count_values.argtypes = [POINTER(c_char_p)]
        dll.ldap_count_values.restype = c_ulong
        dll.ldap_value_free.argtypes = [POINTER(c_char_p)]
        dll.ldap_value_free.restype = c_ulong
        dll.ldap_get_values_len.argtypes = [ld, c_void_p, c_void_p]
        dll.ldap_get_values_len.restype = POINTER(POINTER(berval))
        dll.ldap_count_values_len.argtypes = [POINTER(POINTER(berval))]
        dll.ldap_count_values_len.restype = c_ulong
        dll.ldap_value_free_len.argtypes = [POINTER(POINTER(berval))]
        dll.ldap_value_free_len.restype = c_ulong

    def _encode(self, value: str | None) -> bytes | None:
        if value is None:
            return None
        return value.encode(self.encoding)

    # -----------------------
    # Session
    # -----------------------

    def init(self, host: str | None, port: int) -> int:
        """Return a new session handle, or 0 on failure."""
        return _handle(self.dll.ldap_init(self._encode(host), port))

    def get_last_error(self) -> int:
        return self.dll.LdapGetLastError()

    def set_option(self, ld: int, option: int, value: int) -> int:
        invalue = c_ulong(value)
        return self.dll.ldap_set_option(ld, option, ctypes.byref(invalue))

    def connect(self, ld: int) -> int:
        return self.dll.ldap_connect(ld, None)

    def bind_s(self, ld: int, dn: str | None, cred: str | None, method: int) -> int:
        return self.dll.ldap_bind_s(ld, self._encode(dn), self._encode(cred), method)

    def unbind(self, ld: int) -> int:
        return self.dll.ldap_unbind(ld)

    # -----------------------
    # Search and entries
    # -----------------------

    def search_s(
        self,
        ld: int,
        base: str,
        scope: int,
        searchfilter: str,
        attributes: list[str],
    ) -> tuple[int, int]:
        """
        Run a synchronous search.

        Returns:
            The return code and the result message handle.  The handle may be
            set even when the code reports an error, and must then be freed
            too.

        """
        attrs = (c_char_p * (len(attributes) + 1))(
            *[a.encode(self.encoding) for a in attributes], None
        )
        msg = c_void_p()
        code = self.dll.ldap_search_s(
            ld,
            self._encode(base),
            scope,
            self._encode(searchfilter),
            attrs,
            0,  # attributes and values
            ctypes.byref(msg),
        )
        return code, _handle(msg.value)

    def msgfree(self, msg: int) -> int:
        return self.dll.ldap_msgfree(msg)

    def first_entry(self, ld: int, msg: int) -> int:
        return _handle(self.dll.ldap_first_entry(ld, msg))

    def next_entry(self, ld: int, entry: int) -> int:
        return _handle(self.dll.ldap_next_entry(ld, entry))

    # -----------------------
    # Attributes
    # -----------------------

    def first_attribute(self, ld: int, entry: int) -> tuple[int, int]:
        """
        Start walking the attributes of ``entry``.

        Returns:
            The first attribute name buffer and the iteration state.  Both
            must be released: the name with :py:meth:`memfree`, the state with
            :py:meth:`ber_free`.

        """
        ber = c_void_p()
        name = self.dll.ldap_first_attribute(ld, entry, ctypes.byref(ber))
        return _handle(name), _handle(ber.value)

    def next_attribute(self, ld: int, entry: int, ber: int) -> int:
        return _handle(self.dll.ldap_next_attribute(ld, entry, ber))

    def attribute_name(self, name: int) -> str:
        return ctypes.string_at(name).decode(self.encoding)

    def memfree(self, ptr: int) -> None:
        self.dll.ldap_memfree(ptr)

    def ber_free(self, ber: int) -> None:
        self.dll.ber_free(ber, 0)

    # -----------------------
    # Values
    # -----------------------

    def get_values(self, ld: int, entry: int, name: int):  # noqa: ANN201
        """Return the text values of an attribute; falsy if there are none."""
        return self.dll.ldap_get_values(ld, entry, name)

    def count_values(self, values) -> int:  # noqa: ANN001
        return self.dll.ldap_count_values(values)

    def first_value(self, values) -> bytes:  # noqa: ANN001
        return values[0]

    def value_free(self, values) -> int:  # noqa: ANN001
        return self.dll.ldap_value_free(values)

    def get_values_len(self, ld: int, entry: int, name: int):  # noqa: ANN201
        """Return the binary values of an attribute; falsy if there are none."""
        return self.dll.ldap_get_values_len(ld, entry, name)

    def count_values_len(self, values) -> int:  # noqa: ANN001
        return self.dll.ldap_count_values_len(values)

    def first_value_len(self, values) -> bytes:  # noqa: ANN001
        value = values[0].contents
        return ctypes.string_at(value.bv_val, value.bv_len)

    def value_free_len(self, values) -> int:  # noqa: ANN001
        return self.dll.ldap_value_free_len(values)
