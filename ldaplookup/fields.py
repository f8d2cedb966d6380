"""
Field types for directory records.

A field sits on a :py:class:`~ldaplookup.models.Model` subclass and names the
directory attribute it is filled from.  Each field type knows how to turn one
raw attribute value, as a backend hands it over, into its Python value.
Conversion never fails: data that doesn't fit gives the field's empty value,
because directory schemas vary too much to abort a whole search over one
odd entry.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, cast

from django.core import checks
from django.db.models.constants import LOOKUP_SEP
from django.db.models.fields import NOT_PROVIDED
from django.utils.functional import cached_property

from .sid import SID

if TYPE_CHECKING:
    from .models import Model
    from .typing import RawValue


class Field:
    """
    Base field class for directory records.

    Args:
        verbose_name: The human-readable name of the field.
        name: The name of the field; set from the class attribute name when
            the field is added to a model.
        default: The value a new record starts with.  May be a callable.
        db_column: The directory attribute name.  Defaults to the field name.

    """

    #: Counter for field creation order, used for sorting fields.
    creation_counter: int = 0

    def __init__(
        self,
        verbose_name: str | None = None,
        name: str | None = None,
        default: Any = NOT_PROVIDED,
        db_column: str | None = None,
    ) -> None:
        self.name = name
        self.verbose_name = verbose_name
        self.default = default
        self.db_column = db_column

        self.model: type[Model] | None = None

        self.creation_counter = Field.creation_counter
        Field.creation_counter += 1

    def __repr__(self) -> str:
        """
        Display the module, class, and name of the field.

        Returns:
            A string representation of the field.

        """
        path = f"{self.__class__.__module__}.{self.__class__.__qualname__}"
        name = getattr(self, "name", None)
        if name is not None:
            return f"<{path}: {name}>"
        return f"<{path}>"

    def __lt__(self, other: "Field") -> bool:
        if isinstance(other, Field):
            return self.creation_counter < other.creation_counter
        return NotImplemented

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Field):
            return self.creation_counter == other.creation_counter
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.creation_counter)

    def check(self, **_) -> list[checks.Error]:
        """
        Run field validation checks.

        Returns:
            A list of validation errors.

        """
        return [
            *self._check_field_name(),
            *self._check_model_attribute_clash(),
            *self._check_ldap_attribute(),
        ]

    def _check_field_name(self) -> list[checks.Error]:
        """
        Check if field name is valid.

        Validates that the field name:

        1. Does not end with an underscore
        2. Does not contain "__"

        Returns:
            A list of validation errors for the field name.

        """
        if cast("str", self.name).endswith("_"):
            return [
                checks.Error(
                    "Field names must not end with an underscore.",
                    obj=self,
                    id="fields.E001",
                )
            ]
        if LOOKUP_SEP in cast("str", self.name):
            return [
                checks.Error(
                    f'Field names must not contain "{LOOKUP_SEP}".',
                    obj=self,
                    id="fields.E002",
                )
            ]
        return []

    def _check_model_attribute_clash(self) -> list[checks.Error]:
        """
        Check that the field doesn't hide an attribute of a base class, such
        as :py:meth:`~ldaplookup.models.Model.values`.

        Returns:
            A list of validation errors for the field name.

        """
        if self.model is None:
            return []
        for base in self.model.__mro__[1:]:
            if self.name in base.__dict__:
                return [
                    checks.Error(
                        f"'{self.name}' clashes with {base.__name__}.{self.name}.",
                        obj=self,
                        id="fields.E004",
                    )
                ]
        return []

    def _check_ldap_attribute(self) -> list[checks.Error]:
        if not self.ldap_attribute.strip():
            return [
                checks.Error(
                    "'db_column' must not be blank.",
                    obj=self,
                    id="fields.E003",
                )
            ]
        return []

    @property
    def ldap_attribute(self) -> str:
        """
        Get the directory attribute name for this field.

        Returns:
            The attribute name (db_column if set, otherwise field name).

        """
        return cast("str", self.db_column or self.name)

    def has_default(self) -> bool:
        return self.default is not NOT_PROVIDED

    @cached_property
    def _get_default(self) -> Callable[[], Any]:
        if self.has_default():
            if callable(self.default):
                return self.default
            return lambda: self.default
        return self.empty_value

    def get_default(self) -> Any:
        """
        Get the value a freshly allocated record holds for this field.

        Returns:
            The default value for the field.

        """
        return self._get_default()

    def empty_value(self) -> Any:
        """
        The zero value for this field type.  Subclasses override this.
        """
        return None

    def from_db_value(self, value: "RawValue") -> Any:
        """
        Convert one raw attribute value to our internal Python format.

        Subclasses should implement the actual conversion.

        Args:
            value: the first value of the attribute, as bytes or as a string

        Returns:
            The converted value.

        """
        return value

    def contribute_to_class(self, cls, name: str) -> None:
        """
        Register the field with the model class it belongs to.

        Args:
            cls: The model class to register with.
            name: The name of the field.

        """
        self.name = name
        if self.verbose_name is None:
            self.verbose_name = name.replace("_", " ")
        self.model = cls
        cls._meta.add_field(self)


class CharField(Field):
    """
    A text attribute.

    Bytes from the directory are decoded as UTF-8; bytes that aren't valid
    UTF-8 are replaced rather than rejected.
    """

    def empty_value(self) -> str:
        return ""

    def from_db_value(self, value: "RawValue") -> str:  # type: ignore[override]
        """
        Convert a raw attribute value to a Python string.

        Args:
            value: The raw value.

        Returns:
            The decoded string, or ``""`` for values we can't read as text.

        """
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode("utf-8", errors="replace")
        return self.empty_value()


class SIDField(Field):
    """
    A security identifier attribute, such as ``objectSid``.

    The field holds a :py:class:`~ldaplookup.sid.SID`: the raw bytes, with
    ``str()`` giving the ``S-1-5-...`` form.  Raw bytes are used as they are;
    a string is taken to already hold the raw bytes.
    """

    def empty_value(self) -> SID:
        return SID(b"")

    def from_db_value(self, value: "RawValue") -> SID:  # type: ignore[override]
        return SID.from_value(value)
