"""
Model metadata.

This module provides the Options class, which holds the field list of a record
model and the attribute map built from it: directory attribute name to field.
The map is built once, when the model class is created, and reused for every
record of every search.
"""

from bisect import bisect
from typing import TYPE_CHECKING, cast

from django.core.exceptions import FieldDoesNotExist, ImproperlyConfigured
from django.utils.functional import cached_property
from django.utils.text import camel_case_to_spaces, format_lazy

if TYPE_CHECKING:
    from .fields import Field
    from .models import Model
    from .typing import AttributeMap

#: The attributes allowed on a model's ``Meta`` class.
DEFAULT_NAMES = (
    "verbose_name",
    "verbose_name_plural",
)


class Options:
    """
    Options class for record model metadata.

    This gets instantiated by parsing the ``Meta`` class for the model, and is
    available as ``model._meta`` on the model class.

    Args:
        meta: The Meta class from the model definition.

    """

    def __init__(self, meta) -> None:
        #: The verbose name for this model.
        self.verbose_name: str | None = None
        #: The verbose name plural for this model.
        self.verbose_name_plural: str | None = None

        #: This is set up by the :py:class:`~ldaplookup.models.LdapModelBase`
        #: metaclass.  It is not intended to be set by the user.
        self.model_name: str | None = None
        #: This is set up by the :py:class:`~ldaplookup.models.LdapModelBase`
        #: metaclass.  It is not intended to be set by the user.
        self.object_name: str | None = None
        #: This is set up by the :py:class:`~ldaplookup.models.LdapModelBase`
        #: metaclass.  It is not intended to be set by the user.
        self.meta = meta
        #: This is set up by the :py:class:`~ldaplookup.models.LdapModelBase`
        #: metaclass.  It is not intended to be set by the user.
        self.local_fields: list[Field] = []

    def contribute_to_class(self, cls: type["Model"], name: str) -> None:  # noqa: ARG002
        """
        Used by the :py:class:`~ldaplookup.models.LdapModelBase` metaclass to
        add this :py:class:`Options` instance to a model class.

        Args:
            cls: The model class to contribute to.
            name: The name of the options attribute.

        Raises:
            TypeError: if ``Meta`` has attributes we don't know about

        """
        cls._meta = self
        self.model = cls
        self.object_name = cls.__name__
        self.model_name = self.object_name.lower()
        self.verbose_name = camel_case_to_spaces(self.object_name)

        if self.meta:
            meta_attrs = {
                k: v for k, v in self.meta.__dict__.items() if not k.startswith("_")
            }
            for attr_name in DEFAULT_NAMES:
                if attr_name in meta_attrs:
                    setattr(self, attr_name, meta_attrs.pop(attr_name))
                elif hasattr(self.meta, attr_name):
                    setattr(self, attr_name, getattr(self.meta, attr_name))
            # Any leftover attributes must be invalid.
            if meta_attrs:
                msg = "'class Meta' got invalid attribute(s): {}".format(
                    ",".join(meta_attrs)
                )
                raise TypeError(msg)
        if self.verbose_name_plural is None:
            self.verbose_name_plural = format_lazy("{}s", self.verbose_name)  # type: ignore[assignment]
        del self.meta

    def _prepare(self, model: type["Model"]) -> None:  # noqa: ARG002
        """
        Used by the :py:class:`~ldaplookup.models.LdapModelBase` metaclass to
        validate the model after all fields have been added.

        Raises:
            ImproperlyConfigured: a field failed its checks, or two fields
                read the same directory attribute

        """
        seen: dict[str, str] = {}
        for field in self.local_fields:
            errors = field.check()
            if errors:
                msg = f"{self.object_name}.{field.name}: {errors[0].msg}"
                raise ImproperlyConfigured(msg)
            attribute = field.ldap_attribute
            if attribute in seen:
                msg = (
                    f"{self.object_name}: fields '{seen[attribute]}' and "
                    f"'{field.name}' both read LDAP attribute '{attribute}'"
                )
                raise ImproperlyConfigured(msg)
            seen[attribute] = cast("str", field.name)

    def add_field(self, field: "Field") -> None:
        """
        Used by the :py:class:`~ldaplookup.models.LdapModelBase` metaclass to
        add a field to the model.

        Args:
            field: The field to add.

        """
        self.local_fields.insert(bisect(self.local_fields, field), field)

    def __repr__(self) -> str:
        return f"<Options for {self.object_name}>"

    @property
    def fields(self) -> list["Field"]:
        """
        Get all fields for this model, in definition order.

        Returns:
            A list of all fields.

        """
        return self.local_fields

    @cached_property
    def fields_map(self) -> dict[str, "Field"]:
        """
        Get a mapping of field names to field instances.

        Returns:
            A dictionary mapping field names to field instances.

        """
        return {cast("str", field.name): field for field in self.local_fields}

    @cached_property
    def attribute_to_field_name_map(self) -> "AttributeMap":
        """
        Get a mapping of LDAP attribute names to field names.  This is the
        attribute map the :py:class:`~ldaplookup.results.Materializer` uses to
        route attribute values to fields.

        Returns:
            A dictionary mapping LDAP attribute names to field names.

        """
        return {f.ldap_attribute: cast("str", f.name) for f in self.local_fields}

    @cached_property
    def attributes(self) -> list[str]:
        """
        Get a list of LDAP attribute names for all fields.  This is the
        attribute list backends request from the directory.

        Returns:
            A list of LDAP attribute names.

        """
        return [f.ldap_attribute for f in self.local_fields]

    def get_field(self, field_name: str) -> "Field":
        """
        Return a field instance given its name.

        Args:
            field_name: The name of the field to retrieve.

        Returns:
            The field instance.

        Raises:
            FieldDoesNotExist: If no field with the given name exists.

        """
        try:
            return self.fields_map[field_name]
        except KeyError as e:
            msg = f"{self.object_name} has no field named '{field_name}'"
            raise FieldDoesNotExist(msg) from e
