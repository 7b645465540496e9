"""Entity base class and the synthetic BelongsToLink record.

Entities are plain attribute bags: the mapper assigns every decoded attribute
as an instance attribute, and relationship properties are assigned the same
way when they are included in a read.

Example::

    class Customer(Entity):
        pass

    customer = await repo.create(Customer, {"name": "Ada"})
    customer.id, customer.name, customer.created_at
"""

from __future__ import annotations

from typing import Any, ClassVar

BELONGS_TO_LINK = "BelongsToLink"


class Entity:
    """Base class for mapped entities.

    ``__entity_name__`` overrides the type tag written to the store; it
    defaults to the class name.
    """

    __entity_name__: ClassVar[str | None] = None

    def __init__(self, **attributes: Any) -> None:
        for name, value in attributes.items():
            setattr(self, name, value)

    @classmethod
    def entity_name(cls) -> str:
        return cls.__entity_name__ or cls.__name__

    def to_dict(self) -> dict[str, Any]:
        """Attributes (and any included relationships) as a plain dict."""
        result: dict[str, Any] = {}
        for name, value in vars(self).items():
            if isinstance(value, Entity):
                result[name] = value.to_dict()
            elif isinstance(value, list):
                result[name] = [v.to_dict() if isinstance(v, Entity) else v for v in value]
            else:
                result[name] = value
        return result

    def __eq__(self, other: object) -> bool:
        if type(self) is not type(other):
            return NotImplemented
        return vars(self) == vars(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        ident = getattr(self, "id", None)
        return f"{type(self).__name__}(id={ident!r})"


class BelongsToLink(Entity):
    """Denormalized pointer stored in the partition of a related entity.

    ``foreign_entity_type``/``foreign_key`` name the entity that holds the
    reference; the link's own partition key names the referenced entity.
    """

    __entity_name__ = BELONGS_TO_LINK


def entity_class_for(name: str) -> type[Entity]:
    """Create a bare Entity subclass for a type registered by name only."""
    return type(name, (Entity,), {"__entity_name__": name})


__all__ = ["BELONGS_TO_LINK", "Entity", "BelongsToLink", "entity_class_for"]
