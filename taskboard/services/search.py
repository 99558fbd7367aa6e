"""Activity search - debounced, role-scoped title/description lookup."""

from typing import Optional

from taskboard.config import SyncConfig
from taskboard.models.activity import Activity, ActivityStatus, decode_activity_row
from taskboard.models.identity import Identity, Role
from taskboard.services.debounce_buffer import DebounceBuffer
from taskboard.services.remote_store import ACTIVITY_SELECT, QueryFilter, RemoteStore
from taskboard.utils.errors import DecodeError, TaskboardError
from taskboard.utils.logging import get_structured_logger, sanitize_title

logger = get_structured_logger(__name__)

SEARCH_KEY = "search"


class SearchService:
    """Managers search their whole sector, collaborators their subsector."""

    def __init__(
        self,
        store: RemoteStore,
        identity: Identity,
        debounce_seconds: Optional[float] = None,
        limit: Optional[int] = None,
    ):
        self.store = store
        self.identity = identity
        self.limit = SyncConfig.SEARCH_RESULT_LIMIT if limit is None else limit
        self.query = ""
        self.results: list[Activity] = []
        self.error: Optional[str] = None
        self.searching = False
        self._token = 0
        self._debounce = DebounceBuffer(
            self._on_flush,
            window_seconds=SyncConfig.SEARCH_DEBOUNCE_SECONDS if debounce_seconds is None else debounce_seconds,
        )

    def build_filter(self, term: str) -> QueryFilter:
        profile = self.identity.profile
        eq = {"sector_id": profile.sector_id}
        if profile.role == Role.COLLABORATOR and profile.subsector_id:
            eq["subsector_id"] = profile.subsector_id

        return QueryFilter(
            select=ACTIVITY_SELECT,
            eq=eq,
            neq={"status": ActivityStatus.ARCHIVED.value},
            search_columns=["title", "description"],
            search_term=term.strip(),
            order_by="created_at",
            ascending=False,
            limit=self.limit,
        )

    async def set_query(self, term: str) -> None:
        """Keystroke entry point; a blank query clears the results at once."""
        self.query = term or ""
        if not self.query.strip():
            self._debounce.cancel(SEARCH_KEY)
            self._token += 1
            self.results = []
            self.error = None
            self.searching = False
            return
        await self._debounce.enqueue(SEARCH_KEY, self.query)

    async def _on_flush(self, key: str, terms: list) -> None:
        await self.search(terms[-1])

    async def search(self, term: str) -> list[Activity]:
        """Run a search immediately; results of superseded searches are dropped."""
        if not term or not term.strip():
            self.results = []
            return []

        self._token += 1
        token = self._token
        self.searching = True
        try:
            rows = await self.store.query("activities", self.build_filter(term))
        except TaskboardError as e:
            if token == self._token:
                self.error = str(e)
                self.searching = False
            logger.warning("Search failed", term=sanitize_title(term), error=str(e))
            return list(self.results)

        if token != self._token:
            logger.debug("Discarding superseded search", term=sanitize_title(term))
            return list(self.results)

        results = []
        for row in rows:
            try:
                results.append(decode_activity_row(row))
            except DecodeError as e:
                logger.warning("Skipping undecodable search row", row_id=e.row_id)
        self.results = results
        self.error = None
        self.searching = False
        logger.debug("Search completed", term=sanitize_title(term), results=len(results))
        return list(results)

    def close(self) -> None:
        self._debounce.cancel_all()
