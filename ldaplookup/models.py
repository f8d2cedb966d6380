"""
Record model base class and metaclass.

Callers describe the records they want back from a search by subclassing
:py:class:`Model` and declaring one field per directory attribute::

    from ldaplookup.fields import CharField, SIDField
    from ldaplookup.models import Model

    class User(Model):
        dn = CharField(db_column="DN")
        name = CharField()
        display_name = CharField(db_column="displayName")
        email = CharField(db_column="mail")
        sid = SIDField(db_column="objectSid")

Class attributes that are not fields are ignored by searches.
"""

import inspect
from typing import Any, cast

from .fields import Field
from .options import Options


class LdapModelBase(type):
    """
    Metaclass for record models.

    Builds the model's :py:class:`~ldaplookup.options.Options`, registers its
    fields and validates the attribute map, all once per model class.
    """

    def __new__(cls, name, bases, attrs, **kwargs):
        super_new = super().__new__
        parents = [b for b in bases if isinstance(b, LdapModelBase)]
        if not parents:
            return super_new(cls, name, bases, attrs)

        # Create the class.
        module = attrs.pop("__module__")
        new_attrs = {"__module__": module}
        qualname = attrs.pop("__qualname__", None)
        if qualname is not None:
            new_attrs["__qualname__"] = qualname
        classcell = attrs.pop("__classcell__", None)
        if classcell is not None:
            new_attrs["__classcell__"] = classcell
        new_class = super_new(cls, name, bases, new_attrs, **kwargs)
        attr_meta = attrs.pop("Meta", None)
        meta = attr_meta or getattr(new_class, "Meta", None)

        new_class.add_to_class("_meta", Options(meta))

        # Add all attributes to the class.  This is where the fields get
        # registered
        for obj_name, obj in attrs.items():
            new_class.add_to_class(obj_name, obj)

        new_class._prepare()
        return new_class

    def add_to_class(cls, name: str, value: Any) -> None:
        """
        Add an attribute to the class, calling contribute_to_class if available.

        Args:
            name: The name of the attribute to add.
            value: The value to assign to the attribute.

        """
        # We should call the contribute_to_class method only if it's bound
        if not inspect.isclass(value) and hasattr(value, "contribute_to_class"):
            value.contribute_to_class(cls, name)
        else:
            setattr(cls, name, value)

    def _prepare(cls) -> None:
        opts = cls._meta  # type: ignore[attr-defined]
        opts._prepare(cls)

        # Give the class a docstring -- its definition.
        if cls.__doc__ is None:
            cls.__doc__ = "{}({})".format(
                cls.__name__,
                ", ".join(cast("str", f.name) for f in opts.fields),
            )


class Model(metaclass=LdapModelBase):
    """
    Base class for search result records.

    Keyword Args:
        **kwargs: initial field values, by field name.  Fields not given start
            with their default.

    Raises:
        TypeError: a keyword argument doesn't name a field

    """

    #: The model's metadata: fields and attribute map.
    _meta: Options | None = None

    def __init__(self, **kwargs) -> None:
        opts = cast("Options", self._meta)
        for field in opts.fields:
            name = cast("str", field.name)
            if name in kwargs:
                value = kwargs.pop(name)
            else:
                value = field.get_default()
            setattr(self, name, value)
        for kwarg in kwargs:
            msg = f"'{kwarg}' is an invalid keyword argument for this function"
            raise TypeError(msg)

    def values(self) -> dict[str, Any]:
        """
        Return the field values of this record.

        Returns:
            A dictionary of field name to value, in field definition order.

        """
        return {
            cast("str", f.name): getattr(self, cast("str", f.name))
            for f in cast("Options", self._meta).fields
        }

    def __repr__(self) -> str:
        values = ", ".join(f"{k}={v!r}" for k, v in self.values().items())
        return f"<{self.__class__.__name__}: {values}>"

    def __eq__(self, other: object) -> bool:
        """
        Records are equal when they are of the same model and all their field
        values are equal.
        """
        if not isinstance(other, Model):
            return False
        if self.__class__ is not other.__class__:
            return False
        return self.values() == other.values()

    __hash__ = None  # type: ignore[assignment]
