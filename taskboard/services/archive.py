"""Archive service - archived activity listing, unarchive and permanent delete."""

from typing import Optional, Union

from taskboard.models.activity import Activity, ActivityStatus
from taskboard.models.identity import Identity
from taskboard.services.activity_cache import ActivityCache
from taskboard.services.activity_operations import ActivityOperations
from taskboard.services.notifications import Notifier
from taskboard.services.scopes import ArchiveScope
from taskboard.services.sync_controller import SyncController
from taskboard.utils.errors import InvalidInputError, SupabaseError, TaskboardError
from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

UNARCHIVE_STATUSES = (ActivityStatus.PENDING, ActivityStatus.IN_PROGRESS)


class ArchiveService:
    """Archived activities of the user's sector. Loaded on demand, no realtime."""

    def __init__(
        self,
        controller: SyncController,
        operations: ActivityOperations,
        notifier: Notifier,
        identity: Identity,
    ):
        self.controller = controller
        self.operations = operations
        self.notifier = notifier
        self.scope = ArchiveScope(sector_id=identity.profile.sector_id)

    async def load(self) -> ActivityCache:
        return await self.controller.initialize(self.scope)

    async def refresh(self) -> None:
        await self.controller.refetch(self.scope.key)

    @property
    def cache(self) -> Optional[ActivityCache]:
        return self.controller.cache(self.scope.key)

    def activities(self) -> list[Activity]:
        cache = self.cache
        return cache.rows if cache is not None else []

    async def unarchive(self, activity_id: str, new_status: Union[ActivityStatus, str] = ActivityStatus.PENDING) -> bool:
        new_status = ActivityStatus(new_status)
        if new_status not in UNARCHIVE_STATUSES:
            raise InvalidInputError(f"Cannot unarchive to {new_status.value}")

        restored = await self.operations.update_status(activity_id, new_status)
        if restored:
            logger.info("Activity unarchived", activity_id=activity_id, status=new_status.value)
            self.notifier.success("Activity restored")
        return restored

    async def delete_permanently(self, activity_id: str) -> bool:
        """Irreversible; only archived activities qualify."""
        cache = self.cache
        row = cache.get(activity_id) if cache is not None else None
        if row is not None and not row.is_archived:
            raise InvalidInputError("Only archived activities can be deleted")

        try:
            deleted = await self.controller.store.rpc("delete_activity", {"activity_id": activity_id})
            if not deleted:
                raise SupabaseError("Activity could not be deleted; check permissions or whether it still exists")
        except TaskboardError as e:
            logger.warning("Permanent delete failed", activity_id=activity_id, error=str(e))
            self.notifier.failure("Could not delete activity", str(e))
            return False

        if cache is not None:
            cache.remove_locally(activity_id)
        logger.info("Activity deleted permanently", activity_id=activity_id)
        self.notifier.success("Activity deleted", "The activity was deleted permanently.")
        return True
