"""
Turning directory entries into records.

A search is given an output list owned by the caller.  The
:py:class:`Materializer` checks that list once, before anything is sent to the
directory, tells the backend which attributes to request, and then fills
records from the entries the backend reads::

    users = ResultList(User)
    backend.search("example.com", users, "(objectClass=user)")

A plain list works too, as long as the model is named explicitly::

    users: list[User] = []
    materializer = Materializer(users, model=User)
"""

import logging
from collections.abc import Iterable, MutableMapping, MutableSequence, MutableSet
from typing import Any, Generic, TypeVar, cast

from .exceptions import BadElement, BadType, NeedPointer
from .models import Model
from .options import Options
from .typing import AttributeMap

logger = logging.getLogger("django-ldaplookup")

M = TypeVar("M", bound=Model)


class ResultList(list, Generic[M]):
    """
    A list bound to the model class of its elements.

    Args:
        model: the record model the list holds

    Keyword Args:
        iterable: initial contents

    """

    def __init__(self, model: type[M], iterable: Iterable[M] = ()) -> None:
        super().__init__(iterable)
        #: The record model of the elements
        self.model = model

    def __repr__(self) -> str:
        name = getattr(self.model, "__name__", self.model)
        return f"ResultList({name}, {list.__repr__(self)})"


class Materializer:
    """
    Builds records of the caller's model from raw attribute values and appends
    them to the caller's output list.

    Args:
        out: the list to append records to.  If it is a
            :py:class:`ResultList`, its model is used.

    Keyword Args:
        model: the record model; overrides ``out.model``

    Raises:
        NeedPointer: ``out`` can't be filled in place: ``None``, a tuple, a
            string and the like
        BadType: ``out`` is mutable but not a list of records (a record, a
            dict, a set), or it is a plain list and no ``model`` was given
        BadElement: the model is not a concrete
            :py:class:`~ldaplookup.models.Model` subclass

    """

    def __init__(self, out: Any, model: Any = None) -> None:
        if not isinstance(out, list):
            if isinstance(out, (Model, MutableMapping, MutableSequence, MutableSet)):
                raise BadType
            raise NeedPointer
        if model is None:
            model = getattr(out, "model", None)
        if model is None:
            raise BadType
        if not isinstance(model, type) or not issubclass(model, Model):
            raise BadElement
        # The base class itself has no fields
        if model._meta is None:
            raise BadElement
        #: The caller's output list
        self.out: list[Model] = out
        #: The record model
        self.model: type[Model] = model
        meta = cast("Options", model._meta)
        self.meta = meta
        self.fields_map = meta.fields_map
        #: LDAP attribute name -> field name
        self.tag_fields: AttributeMap = meta.attribute_to_field_name_map

    @property
    def attributes(self) -> list[str]:
        """
        The attributes to request from the directory: every attribute a field
        of the model reads, each once.
        """
        return list(self.meta.attributes)

    def new_record(self) -> Model:
        """
        Allocate a new record with every field at its default.

        Returns:
            A new instance of the model.

        """
        return self.model()

    def set_field(self, record: Model, attribute: str, value: Any) -> None:
        """
        Assign a raw attribute value to the field that reads ``attribute``.

        Attributes no field reads are ignored, so directories that return more
        than we asked for don't break anything.  This never raises.

        Args:
            record: a record from :py:meth:`new_record`
            attribute: the directory attribute name
            value: its raw value, bytes or a string

        """
        try:
            field_name = self.tag_fields[attribute]
        except KeyError:
            logger.debug(
                "ldaplookup.results.unknown-attribute model=%s attribute=%s",
                self.model.__name__,
                attribute,
            )
            return
        field = self.fields_map[field_name]
        setattr(record, field_name, field.from_db_value(value))

    def append(self, record: Model) -> None:
        """
        Append ``record`` to the caller's output list.

        Args:
            record: the finished record

        """
        self.out.append(record)
