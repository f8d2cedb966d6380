"""
Type aliases for the data that flows between backends and the materializer.
"""

#: One entry as python-ldap returns it: ``(dn, {attribute: [value, ...]})``
LDAPData = tuple[str, dict[str, list[bytes]]]
#: A single attribute value as a backend hands it to the materializer
RawValue = bytes | str
#: LDAP attribute name -> model field name
AttributeMap = dict[str, str]
