"""Board variants - resolve drag containers onto sync controller caches."""

from typing import Callable, ClassVar, Iterable, Optional

from taskboard.models.activity import Activity
from taskboard.models.drag import SortMode
from taskboard.services.activity_cache import sort_activities
from taskboard.services.event_bus import BoardEvent, EventBus
from taskboard.services.groupings import by_assignee, by_subsector
from taskboard.services.manual_order import ManualOrderStore
from taskboard.services.scopes import PersonalListScope, SectorScope
from taskboard.services.sync_controller import SyncController
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


class Board:
    """Container resolver shared by the drag engine and the presentation layer.

    A container id is ``<prefix>-<owner>`` where the owner is the value of
    ``owner_field`` that a cross-container move writes.
    """

    prefix: ClassVar[str] = ""
    owner_field: ClassVar[str] = ""

    def __init__(
        self,
        controller: SyncController,
        order: Optional[ManualOrderStore] = None,
        sort_mode: SortMode = SortMode.MANUAL,
    ):
        self.controller = controller
        self.order = order or ManualOrderStore()
        self.sort_mode = sort_mode

    # -- container ids -------------------------------------------------------

    def container_id(self, owner: str) -> str:
        return f"{self.prefix}-{owner}"

    def parse_container(self, target: Optional[str]) -> Optional[str]:
        """Owner key of a container id, None for anything else."""
        marker = f"{self.prefix}-"
        if not target or not target.startswith(marker):
            return None
        owner = target[len(marker):]
        return owner or None

    def move_fields(self, dest_owner: str) -> dict:
        return {self.owner_field: dest_owner}

    # -- to implement --------------------------------------------------------

    async def load(self) -> None:
        raise NotImplementedError

    def scope_for(self, owner: str) -> Optional[str]:
        raise NotImplementedError

    def container_keys(self) -> list[str]:
        raise NotImplementedError

    def items(self, owner: str) -> list[Activity]:
        """Rows of one container in server order."""
        raise NotImplementedError

    async def announce_move(self, bus: EventBus, source_owner: str, dest_owner: str, origin: str) -> None:
        await bus.publish(BoardEvent.ACTIVITY_UPDATED, origin=origin)

    # -- derived -------------------------------------------------------------

    def load_generation(self, owner: str) -> Optional[int]:
        """Fetch count of the cache backing the container; changes on every reload."""
        cache = self.controller.cache(self.scope_for(owner))
        return cache.loads if cache is not None else None

    def set_sort_mode(self, sort_mode: SortMode) -> None:
        returning = self.sort_mode != SortMode.MANUAL and sort_mode == SortMode.MANUAL
        self.sort_mode = sort_mode
        if not returning:
            return
        for owner in self.container_keys():
            self.order.restore(
                self.container_id(owner),
                [item.id for item in self.items(owner)],
                self.load_generation(owner),
            )

    def ordered_items(self, owner: str) -> list[Activity]:
        """Rows of one container as displayed under the current sort mode."""
        items = self.items(owner)
        if self.sort_mode != SortMode.MANUAL:
            return sort_activities(items, self.sort_mode)

        order = self.order.resolve(
            self.container_id(owner),
            [item.id for item in items],
            self.load_generation(owner),
        )
        position = {item_id: index for index, item_id in enumerate(order)}
        return sorted(items, key=lambda item: position.get(item.id, len(position)))

    def columns(self) -> dict[str, list[Activity]]:
        return {self.container_id(owner): self.ordered_items(owner) for owner in self.container_keys()}

    def locate(self, activity_id: str) -> Optional[str]:
        """Owner key of the container currently showing the activity."""
        for owner in self.container_keys():
            if any(item.id == activity_id for item in self.items(owner)):
                return owner
        return None


class _SectorBoard(Board):
    """Columns derived from one sector cache through a grouping key."""

    key_fn: ClassVar[Callable[[Activity], Optional[str]]]

    def __init__(
        self,
        controller: SyncController,
        scope: SectorScope,
        owners: Iterable[str] = (),
        order: Optional[ManualOrderStore] = None,
        sort_mode: SortMode = SortMode.MANUAL,
    ):
        super().__init__(controller, order, sort_mode)
        self.scope = scope
        self.owners = list(owners)

    async def load(self) -> None:
        await self.controller.initialize(self.scope)

    def scope_for(self, owner: str) -> Optional[str]:
        return self.scope.key

    def _groups(self) -> dict:
        cache = self.controller.cache(self.scope.key)
        if cache is None:
            return {}
        # MANUAL keeps server order; display sorting happens in ordered_items
        return cache.group_by(type(self).key_fn, SortMode.MANUAL)

    def container_keys(self) -> list[str]:
        keys = list(self.owners)
        keys.extend(owner for owner in self._groups() if owner not in keys)
        return keys

    def items(self, owner: str) -> list[Activity]:
        return list(self._groups().get(owner, []))


class CollaboratorBoard(_SectorBoard):
    """One column per collaborator; moves reassign ``user_id``."""
    prefix = "collaborator"
    owner_field = "user_id"
    key_fn = staticmethod(by_assignee)


class SubsectorBoard(_SectorBoard):
    """One column per subsector; moves change ``subsector_id``."""
    prefix = "subsector"
    owner_field = "subsector_id"
    key_fn = staticmethod(by_subsector)


class PersonalListsBoard(Board):
    """One column per personal list, each backed by its own list scope."""
    prefix = "list"
    owner_field = "list_id"

    def __init__(
        self,
        controller: SyncController,
        owner_id: str,
        list_ids: Iterable[str] = (),
        order: Optional[ManualOrderStore] = None,
        sort_mode: SortMode = SortMode.MANUAL,
    ):
        super().__init__(controller, order, sort_mode)
        self.owner_id = owner_id
        self.list_ids = list(dict.fromkeys(list_ids))

    def _scope(self, list_id: str) -> PersonalListScope:
        return PersonalListScope(list_id=list_id, owner_id=self.owner_id)

    async def load(self) -> None:
        for list_id in self.list_ids:
            await self.controller.initialize(self._scope(list_id))

    async def add_list(self, list_id: str) -> None:
        if list_id not in self.list_ids:
            self.list_ids.append(list_id)
        await self.controller.initialize(self._scope(list_id))

    async def remove_list(self, list_id: str) -> None:
        if list_id in self.list_ids:
            self.list_ids.remove(list_id)
        self.order.forget(self.container_id(list_id))
        await self.controller.release(self._scope(list_id).key)

    def scope_for(self, owner: str) -> Optional[str]:
        return self._scope(owner).key

    def container_keys(self) -> list[str]:
        return list(self.list_ids)

    def items(self, owner: str) -> list[Activity]:
        cache = self.controller.cache(self.scope_for(owner))
        return cache.rows if cache is not None else []

    def move_fields(self, dest_owner: str) -> dict:
        return {"list_id": dest_owner, "is_private": True}

    async def announce_move(self, bus: EventBus, source_owner: str, dest_owner: str, origin: str) -> None:
        await bus.publish(BoardEvent.PERSONAL_LIST_UPDATED, list_id=source_owner, origin=origin)
        await bus.publish(BoardEvent.PERSONAL_LIST_FORCE_RELOAD, list_id=dest_owner, origin=origin)
        logger.debug("Personal list move announced", source_list=source_owner, dest_list=dest_owner)
