from types import SimpleNamespace
from typing import Any, Dict
from marshmallow import INCLUDE, EXCLUDE, Schema, post_load

EXCLUDE = EXCLUDE
JSON = Dict[str, Any]
MAX_REPR_LEN = 80


class BaseModel(SimpleNamespace):
    """BaseModel that all spec models inherit from.

    Loaded fields become instance attributes. Models are treated as values:
    use `replace` to derive a modified copy instead of mutating a shared one.
    """

    def __repr__(self) -> str:
        repr_ = super().__repr__()
        if len(repr_) > MAX_REPR_LEN:
            return repr_[:MAX_REPR_LEN] + " ...)"
        return repr_

    def replace(self, **changes: Any) -> "BaseModel":
        """Return a copy of this model with `changes` applied."""
        return self.__class__(**{**self.__dict__, **changes})


class UnknownModel(BaseModel):
    """Model used when a schema does not declare its own."""

    def keys(self):
        return self.__dict__.keys()

    def items(self):
        return self.__dict__.items()


class BaseSchema(Schema):
    """The default schema for all models."""

    __model__: Any = UnknownModel
    """Determine the object that is created when the load method is called."""

    class Meta:
        unknown = INCLUDE

    @post_load
    def make_object(self, data: JSON, **kwargs: Any) -> "__model__":
        """Build model for the given `__model__` class attribute."""
        return self.__model__(**data)
