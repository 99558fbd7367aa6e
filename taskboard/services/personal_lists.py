"""Personal lists service - private boards owned by the signed-in user."""

from typing import Optional

from taskboard.models.identity import Identity
from taskboard.models.personal_list import PersonalList
from taskboard.models.realtime import ChangeEvent
from taskboard.services.boards import PersonalListsBoard
from taskboard.services.notifications import Notifier
from taskboard.services.remote_store import QueryFilter, RemoteStore, Unsubscribe
from taskboard.utils.errors import InvalidInputError, TaskboardError
from taskboard.utils.logging import get_structured_logger, mask_user_id

logger = get_structured_logger(__name__)

TABLE = "personal_lists"


class PersonalListsService:
    """CRUD for the owner's lists, kept in step with an optional lists board."""

    def __init__(
        self,
        store: RemoteStore,
        identity: Identity,
        notifier: Optional[Notifier] = None,
        board: Optional[PersonalListsBoard] = None,
    ):
        self.store = store
        self.identity = identity
        self.notifier = notifier or Notifier()
        self.board = board
        self.lists: list[PersonalList] = []
        self.error: Optional[str] = None
        self._unsubscribe: Optional[Unsubscribe] = None

    @property
    def owner_id(self) -> str:
        return self.identity.user.id

    def get(self, list_id: str) -> Optional[PersonalList]:
        for personal_list in self.lists:
            if personal_list.id == list_id:
                return personal_list
        return None

    async def fetch_lists(self) -> list[PersonalList]:
        """Reload the owner's lists; on failure the previous lists stay."""
        try:
            rows = await self.store.query(
                TABLE,
                QueryFilter(eq={"user_id": self.owner_id}, order_by="created_at", ascending=True),
            )
        except TaskboardError as e:
            self.error = str(e)
            logger.warning("Failed to fetch personal lists", user_id=mask_user_id(self.owner_id), error=str(e))
            return list(self.lists)

        self.lists = [PersonalList.model_validate(row) for row in rows]
        self.error = None
        await self._sync_board()
        return list(self.lists)

    async def _sync_board(self) -> None:
        if self.board is None:
            return
        current = {personal_list.id for personal_list in self.lists}
        for list_id in list(self.board.list_ids):
            if list_id not in current:
                await self.board.remove_list(list_id)
        for personal_list in self.lists:
            if personal_list.id not in self.board.list_ids:
                await self.board.add_list(personal_list.id)

    @staticmethod
    def _clean_name(name: str) -> str:
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("List name is required")
        return name

    async def create_list(self, name: str) -> PersonalList:
        name = self._clean_name(name)
        payload = {
            "name": name,
            "user_id": self.owner_id,
            "sector_id": self.identity.profile.sector_id,
        }
        try:
            rows = await self.store.mutate(TABLE, "insert", payload)
        except TaskboardError as e:
            self.notifier.failure("Could not create list", str(e))
            raise

        personal_list = PersonalList.model_validate(rows[0])
        self.lists.append(personal_list)
        if self.board is not None:
            await self.board.add_list(personal_list.id)

        logger.info("Personal list created", list_id=personal_list.id, user_id=mask_user_id(self.owner_id))
        self.notifier.success("List created")
        return personal_list

    async def rename_list(self, list_id: str, name: str) -> Optional[PersonalList]:
        name = self._clean_name(name)
        try:
            await self.store.mutate(TABLE, "update", {"name": name}, match={"id": list_id, "user_id": self.owner_id})
        except TaskboardError as e:
            self.notifier.failure("Could not rename list", str(e))
            return None

        for index, personal_list in enumerate(self.lists):
            if personal_list.id == list_id:
                self.lists[index] = personal_list.model_copy(update={"name": name})
                return self.lists[index]
        return None

    async def delete_list(self, list_id: str) -> bool:
        try:
            await self.store.mutate(TABLE, "delete", match={"id": list_id, "user_id": self.owner_id})
        except TaskboardError as e:
            self.notifier.failure("Could not delete list", str(e))
            return False

        self.lists = [personal_list for personal_list in self.lists if personal_list.id != list_id]
        if self.board is not None:
            await self.board.remove_list(list_id)
        logger.info("Personal list deleted", list_id=list_id)
        return True

    # -- realtime ------------------------------------------------------------

    async def subscribe(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = await self.store.subscribe(TABLE, f"user_id=eq.{self.owner_id}", self._on_change)

    async def _on_change(self, event: ChangeEvent) -> None:
        logger.debug("Personal lists changed", event_type=event.event_type)
        await self.fetch_lists()

    async def close(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            await unsubscribe()
