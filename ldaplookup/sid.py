"""
Security identifiers.

A SID is a structured binary identifier for a security principal::

    +----------+-----------+------------------------+----------------------+
    | revision | sub-auth  | identifier authority   | sub-authorities      |
    | 1 byte   | count: 1  | 6 bytes, big endian    | count * 4 bytes, LE  |
    +----------+-----------+------------------------+----------------------+

and is rendered as ``S-<revision>-<authority>-<sub-authority>-...``, e.g.
``S-1-5-21-3623811015-3361044348-30300820-1013``.
"""

import struct
from typing import Any

#: The identifier authority is the low 48 bits of the first 8 bytes.
AUTHORITY_MASK = 0xFFFFFFFFFFFF


def sid_to_str(data: bytes | bytearray | None) -> str:
    """
    Render a binary SID in its textual form.

    Malformed input never raises: empty data, data shorter than 8 bytes or
    data whose length is not a multiple of 4 give ``""``.  If the data holds
    fewer sub-authorities than its count byte claims, each missing
    sub-authority is rendered as ``0``; bytes beyond the claimed
    sub-authorities are ignored.

    Note:
        The revision is rendered in hexadecimal, everything else in decimal.

    Args:
        data: the raw SID bytes, as stored in ``objectSid``

    Returns:
        The textual SID, or ``""`` if ``data`` is malformed.

    """
    if not data or len(data) < 8 or len(data) % 4 != 0:  # noqa: PLR2004
        return ""
    data = bytes(data)
    count = data[1]
    authority = struct.unpack(">Q", data[:8])[0] & AUTHORITY_MASK
    parts = [f"S-{data[0]:x}", str(authority)]
    offset = 8
    for _ in range(count):
        chunk = data[offset : offset + 4]
        offset += 4
        if len(chunk) < 4:  # noqa: PLR2004
            parts.append("0")
            continue
        parts.append(str(struct.unpack("<I", chunk)[0]))
    return "-".join(parts)


class SID(bytes):
    """
    The raw bytes of a security identifier.

    ``str(sid)`` gives the textual form; the bytes themselves are what the
    directory stores and are kept unchanged.
    """

    @classmethod
    def from_value(cls, value: Any) -> "SID":
        """
        Build a :py:class:`SID` from whatever a backend handed us.

        Bytes are taken as they are.  A ``str`` is treated as a string that
        already holds the raw bytes, one byte per code point.  Anything else
        gives an empty SID.

        Args:
            value: the raw attribute value

        Returns:
            A new :py:class:`SID`.

        """
        if isinstance(value, cls):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls(bytes(value))
        if isinstance(value, str):
            try:
                return cls(value.encode("latin-1"))
            except UnicodeEncodeError:
                return cls(value.encode("utf-8", errors="replace"))
        return cls(b"")

    def __str__(self) -> str:
        return sid_to_str(self)

    def __repr__(self) -> str:
        return f"SID({sid_to_str(self)!r})"
