"""Application context - wires the sync engine for one signed-in identity."""

from typing import Iterable, Optional
from ulid import ULID

from taskboard.models.drag import SortMode
from taskboard.models.identity import Identity
from taskboard.services.activity_operations import ActivityOperations
from taskboard.services.archive import ArchiveService
from taskboard.services.boards import CollaboratorBoard, PersonalListsBoard, SubsectorBoard
from taskboard.services.drag_reorder import DragGate, DragReorderEngine, OpenHandler
from taskboard.services.event_bus import EventBus, FocusRefetch
from taskboard.services.history import HistoryService
from taskboard.services.manual_order import ManualOrderStore
from taskboard.services.notifications import Notifier
from taskboard.services.personal_lists import PersonalListsService
from taskboard.services.remote_store import RemoteStore
from taskboard.services.scopes import SectorScope
from taskboard.services.search import SearchService
from taskboard.services.supabase_client import SupabaseRemoteStore
from taskboard.services.sync_controller import SyncController
from taskboard.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)


class TaskboardContext:
    """Store, bus, notifier, controller and drag gate shared by every board of one identity."""

    def __init__(
        self,
        identity: Identity,
        store: Optional[RemoteStore] = None,
        bus: Optional[EventBus] = None,
        notifier: Optional[Notifier] = None,
        gate: Optional[DragGate] = None,
        name: Optional[str] = None,
    ):
        self.identity = identity
        self.store = store if store is not None else SupabaseRemoteStore()
        self.bus = bus or EventBus()
        self.notifier = notifier or Notifier()
        self.gate = gate or DragGate()
        self.order = ManualOrderStore()
        self.controller = SyncController(self.store, self.bus, name=name or f"sync-{ULID()}")
        self.operations = ActivityOperations(self.store, self.controller, self.bus, self.notifier, identity)
        self.focus = FocusRefetch(self.bus)
        self._searches: list[SearchService] = []
        logger.info(
            "Taskboard context created",
            user_id=mask_user_id(identity.user.id),
            role=identity.profile.role.value,
            controller=self.controller.name
        )

    @property
    def sector_scope(self) -> SectorScope:
        return SectorScope.for_identity(self.identity)

    # -- boards ----------------------------------------------------------------

    def collaborator_board(self, collaborators: Iterable[str] = (), sort_mode: SortMode = SortMode.MANUAL) -> CollaboratorBoard:
        return CollaboratorBoard(self.controller, self.sector_scope, collaborators, self.order, sort_mode)

    def subsector_board(self, subsectors: Iterable[str] = (), sort_mode: SortMode = SortMode.MANUAL) -> SubsectorBoard:
        return SubsectorBoard(self.controller, self.sector_scope, subsectors, self.order, sort_mode)

    def personal_lists_board(self, list_ids: Iterable[str] = (), sort_mode: SortMode = SortMode.MANUAL) -> PersonalListsBoard:
        return PersonalListsBoard(self.controller, self.identity.user.id, list_ids, self.order, sort_mode)

    def drag_engine(self, board, on_open: Optional[OpenHandler] = None) -> DragReorderEngine:
        return DragReorderEngine(board, self.bus, self.notifier, gate=self.gate, on_open=on_open)

    # -- services --------------------------------------------------------------

    def personal_lists(self, board: Optional[PersonalListsBoard] = None) -> PersonalListsService:
        return PersonalListsService(self.store, self.identity, self.notifier, board)

    def archive(self) -> ArchiveService:
        return ArchiveService(self.controller, self.operations, self.notifier, self.identity)

    def history(self) -> HistoryService:
        return HistoryService(self.store, self.identity)

    def search(self) -> SearchService:
        service = SearchService(self.store, self.identity)
        self._searches.append(service)
        return service

    async def close(self) -> None:
        self.focus.stop()
        for service in self._searches:
            service.close()
        await self.controller.teardown()
