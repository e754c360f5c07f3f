"""
Catalog storage - query/update access to catalog entities plus lifecycle signals

Writes go through CatalogStore so that subscribers (the Stripe sync bridge) hear
about them. Internal linkage writes pass ``system_write=True``; the flag travels
on the emitted event and subscribers are expected to ignore such events.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Type, Union
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import load_only

from core.utils.money import to_decimal

logger = logging.getLogger(__name__)

EntityId = Union[UUID, str]


class LifecycleAction(str, Enum):
    AFTER_CREATE = "afterCreate"
    AFTER_UPDATE = "afterUpdate"
    BEFORE_DELETE = "beforeDelete"


@dataclass
class LifecycleEvent:
    action: LifecycleAction
    model: Type
    entity_id: UUID
    store: "CatalogStore"
    # Entity state after the write; None for beforeDelete, which only knows the row id
    result: Any = None
    changed_fields: Set[str] = field(default_factory=set)
    system_write: bool = False


LifecycleHook = Callable[[LifecycleEvent], Awaitable[None]]


class LifecycleRegistry:
    """Per-model subscriber lists for catalog lifecycle events."""

    def __init__(self):
        self._hooks: Dict[Type, List[LifecycleHook]] = {}

    def subscribe(self, model: Type, hook: LifecycleHook):
        hooks = self._hooks.setdefault(model, [])
        if hook not in hooks:
            hooks.append(hook)

    def unsubscribe(self, model: Type, hook: LifecycleHook):
        if hook in self._hooks.get(model, []):
            self._hooks[model].remove(hook)

    def hooks_for(self, model: Type) -> List[LifecycleHook]:
        return list(self._hooks.get(model, []))

    def clear(self):
        self._hooks.clear()


catalog_lifecycle = LifecycleRegistry()


def parse_entity_id(entity_id: EntityId) -> Optional[UUID]:
    if isinstance(entity_id, UUID):
        return entity_id
    try:
        return UUID(str(entity_id))
    except (TypeError, ValueError):
        return None


def _differs(current: Any, new: Any) -> bool:
    if isinstance(current, Decimal) and new is not None:
        return current != to_decimal(new)
    return current != new


class CatalogStore:
    """Query/update interface for one catalog model (Product or Engraving)."""

    def __init__(self, db: AsyncSession, model: Type, registry: Optional[LifecycleRegistry] = None):
        self.db = db
        self.model = model
        self.registry = registry if registry is not None else catalog_lifecycle

    def _load_only(self, fields: Iterable[str]):
        return load_only(*[getattr(self.model, name) for name in fields])

    async def find_by_id(self, entity_id: EntityId):
        parsed = parse_entity_id(entity_id)
        if parsed is None:
            return None
        result = await self.db.execute(select(self.model).where(self.model.id == parsed))
        return result.scalars().first()

    async def find_first(self, fields: Optional[Iterable[str]] = None, **filters):
        query = select(self.model).filter_by(**filters)
        if fields:
            query = query.options(self._load_only(fields))
        result = await self.db.execute(query.order_by(self.model.created_at, self.model.id).limit(1))
        return result.scalars().first()

    async def find_many(
        self,
        filters: Optional[Dict[str, Any]] = None,
        fields: Optional[Iterable[str]] = None,
        ids: Optional[Iterable[EntityId]] = None
    ) -> List[Any]:
        """
        Fetch entities matching ``filters`` (column equality) and, optionally, an id set.
        ``fields`` restricts the loaded columns; the primary key is always loaded.
        """
        query = select(self.model)
        if filters:
            query = query.filter_by(**filters)
        if ids is not None:
            parsed = [i for i in (parse_entity_id(v) for v in ids) if i is not None]
            if not parsed:
                return []
            query = query.where(self.model.id.in_(parsed))
        if fields:
            query = query.options(self._load_only(fields))
        result = await self.db.execute(query.order_by(self.model.created_at, self.model.id))
        return list(result.scalars().all())

    async def create(self, data: Dict[str, Any]):
        entity = self.model(**data)
        self.db.add(entity)
        await self.db.commit()
        await self.db.refresh(entity)

        await self._emit(LifecycleEvent(
            action=LifecycleAction.AFTER_CREATE,
            model=self.model,
            entity_id=entity.id,
            store=self,
            result=entity,
            changed_fields=set(data.keys()),
        ))
        return entity

    async def update(self, entity_id: EntityId, data: Dict[str, Any], system_write: bool = False):
        """
        Apply ``data`` and emit afterUpdate with the set of fields whose value actually changed.
        ``system_write`` marks internal writes (linkage ids) so subscribers skip them.
        """
        entity = await self.find_by_id(entity_id)
        if entity is None:
            return None

        changed = {key for key, value in data.items() if _differs(getattr(entity, key), value)}
        for key in changed:
            setattr(entity, key, data[key])
        await self.db.commit()
        await self.db.refresh(entity)

        await self._emit(LifecycleEvent(
            action=LifecycleAction.AFTER_UPDATE,
            model=self.model,
            entity_id=entity.id,
            store=self,
            result=entity,
            changed_fields=changed,
            system_write=system_write,
        ))
        return entity

    async def delete(self, entity_id: EntityId) -> bool:
        entity = await self.find_by_id(entity_id)
        if entity is None:
            return False

        await self._emit(LifecycleEvent(
            action=LifecycleAction.BEFORE_DELETE,
            model=self.model,
            entity_id=entity.id,
            store=self,
        ))

        await self.db.delete(entity)
        await self.db.commit()
        return True

    async def _emit(self, event: LifecycleEvent):
        for hook in self.registry.hooks_for(self.model):
            await hook(event)
