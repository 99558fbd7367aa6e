"""Drag-reorder engine - gesture state machine, drop classification and move persistence."""

import inspect
import math
from typing import Awaitable, Callable, Optional, Union

from taskboard.config import SyncConfig
from taskboard.models.drag import DragSession, DragState, DropKind, DropOutcome, SortMode
from taskboard.services.boards import Board
from taskboard.services.event_bus import EventBus
from taskboard.services.notifications import Notifier
from taskboard.utils.errors import DragError, TaskboardError
from taskboard.utils.logging import correlation_context, get_structured_logger, log_timing

logger = get_structured_logger(__name__)

OpenHandler = Callable[[str], Union[None, Awaitable[None]]]


class DragGate:
    """Allows one drag session at a time across every engine sharing the gate."""

    def __init__(self):
        self.holder = None

    @property
    def busy(self) -> bool:
        return self.holder is not None

    def acquire(self, engine: "DragReorderEngine") -> bool:
        if self.holder is not None and self.holder is not engine:
            return False
        self.holder = engine
        return True

    def release(self, engine: "DragReorderEngine") -> None:
        if self.holder is engine:
            self.holder = None


class DragReorderEngine:
    """Turns pointer and keyboard gestures on a board into reorders and moves.

    Pointer drags start ``pending`` and only become ``dragging`` after the
    pointer travels the activation distance; releasing earlier is a click.
    Keyboard drags start in ``dragging``. A drop issues at most one store
    mutation.
    """

    def __init__(
        self,
        board: Board,
        bus: EventBus,
        notifier: Notifier,
        gate: Optional[DragGate] = None,
        activation_distance: Optional[float] = None,
        on_open: Optional[OpenHandler] = None,
    ):
        self.board = board
        self.bus = bus
        self.notifier = notifier
        self.gate = gate or DragGate()
        self.activation_distance = (
            SyncConfig.DRAG_ACTIVATION_DISTANCE_PX if activation_distance is None else activation_distance
        )
        self.on_open = on_open
        self.state = DragState.IDLE
        self.session: Optional[DragSession] = None

    # -- gesture start -------------------------------------------------------

    def _begin(self, activity_id: str, state: DragState, x: float = 0.0, y: float = 0.0) -> bool:
        if self.state != DragState.IDLE:
            raise DragError("A drag is already in progress on this board")

        source = self.board.locate(activity_id)
        if source is None:
            raise DragError(f"Activity {activity_id} is not on this board")

        if not self.gate.acquire(self):
            logger.debug("Drag refused, another session is active", activity_id=activity_id)
            return False

        self.session = DragSession(
            active_id=activity_id,
            source_container=source,
            origin_x=x,
            origin_y=y,
            activated=state == DragState.DRAGGING,
        )
        self.state = state
        return True

    def pointer_down(self, activity_id: str, x: float, y: float) -> bool:
        return self._begin(activity_id, DragState.PENDING, x, y)

    def start(self, activity_id: str) -> bool:
        """Keyboard drag (space on a focused card); active immediately."""
        return self._begin(activity_id, DragState.DRAGGING)

    def pointer_move(self, x: float, y: float) -> bool:
        """Returns True once the gesture is a drag."""
        if self.state == DragState.PENDING and self.session is not None:
            travelled = math.hypot(x - self.session.origin_x, y - self.session.origin_y)
            if travelled >= self.activation_distance:
                self.state = DragState.DRAGGING
                self.session.activated = True
                logger.debug("Drag activated", activity_id=self.session.active_id, travelled_px=round(travelled, 1))
        return self.state == DragState.DRAGGING

    def drag_over(self, target: Optional[str]) -> Optional[DropKind]:
        """Update the drop candidate; nothing is mutated before the drop."""
        if self.state != DragState.DRAGGING or self.session is None:
            return None
        self.session.over_id = target
        self.session.classification = self.classify(target)
        return self.session.classification

    # -- classification ------------------------------------------------------

    def _resolve_target(self, target: Optional[str]) -> tuple[Optional[str], bool]:
        """Owner key of the target and whether the target is an item."""
        if not target:
            return None, False
        owner = self.board.parse_container(target)
        if owner is not None:
            return (owner if owner in self.board.container_keys() else None), False
        return self.board.locate(target), True

    def classify(self, target: Optional[str]) -> DropKind:
        session = self.session
        if session is None:
            return DropKind.NOOP

        dest_owner, over_item = self._resolve_target(target)
        if dest_owner is None:
            return DropKind.NOOP
        if dest_owner != session.source_container:
            return DropKind.MOVE
        if self.board.sort_mode != SortMode.MANUAL or not over_item or target == session.active_id:
            return DropKind.NOOP
        return DropKind.REORDER

    # -- gesture end ---------------------------------------------------------

    async def pointer_up(self, target: Optional[str] = None) -> DropOutcome:
        if self.state == DragState.PENDING and self.session is not None:
            activity_id = self.session.active_id
            self._reset()
            logger.debug("Press released below drag threshold", activity_id=activity_id)
            if self.on_open is not None:
                result = self.on_open(activity_id)
                if inspect.isawaitable(result):
                    await result
            return DropOutcome(kind=DropKind.CLICK, activity_id=activity_id)

        return await self.drop(target)

    async def drop(self, target: Optional[str] = None) -> DropOutcome:
        if self.state != DragState.DRAGGING or self.session is None:
            raise DragError("No active drag to drop")

        session = self.session
        target = target if target is not None else session.over_id
        kind = self.classify(target)
        dest_owner, _ = self._resolve_target(target)
        # The gesture is over; persistence below no longer holds the gate
        self._reset()

        if kind == DropKind.MOVE:
            return await self._move(session, dest_owner, target)
        if kind == DropKind.REORDER:
            return self._reorder(session, target)
        return DropOutcome(
            kind=DropKind.NOOP,
            activity_id=session.active_id,
            source_container=self.board.container_id(session.source_container),
        )

    def cancel(self) -> DropOutcome:
        session = self.session
        self._reset()
        return DropOutcome(kind=DropKind.NOOP, activity_id=session.active_id if session else None)

    def _reset(self) -> None:
        self.session = None
        self.state = DragState.IDLE
        self.gate.release(self)

    # -- persistence ---------------------------------------------------------

    def _reorder(self, session: DragSession, target: str) -> DropOutcome:
        container = self.board.container_id(session.source_container)
        # Seeds the manual order on first use
        self.board.ordered_items(session.source_container)
        indexes = self.board.order.reorder(container, session.active_id, target)
        if indexes is None:
            return DropOutcome(kind=DropKind.NOOP, activity_id=session.active_id, source_container=container)

        old_index, new_index = indexes
        logger.info(
            "Activity reordered",
            activity_id=session.active_id,
            container=container,
            old_index=old_index,
            new_index=new_index
        )
        return DropOutcome(
            kind=DropKind.REORDER,
            activity_id=session.active_id,
            source_container=container,
            target_container=container,
            old_index=old_index,
            new_index=new_index,
        )

    async def _move(self, session: DragSession, dest_owner: str, target: str) -> DropOutcome:
        board = self.board
        controller = board.controller
        activity_id = session.active_id
        source_owner = session.source_container
        source_container = board.container_id(source_owner)
        dest_container = board.container_id(dest_owner)
        source_key = board.scope_for(source_owner)
        dest_key = board.scope_for(dest_owner)
        fields = board.move_fields(dest_owner)

        with correlation_context(prefix="drag"):
            source_order = [item.id for item in board.ordered_items(source_owner)]
            dest_order = [item.id for item in board.ordered_items(dest_owner)]
            old_index = source_order.index(activity_id) if activity_id in source_order else None
            index = dest_order.index(target) if target in dest_order else None

            patches = controller.move_locally(activity_id, source_key, dest_key, fields)
            new_index = board.order.transfer(source_container, dest_container, activity_id, index)
            board.order.hold([source_container, dest_container])

            error = None
            try:
                with log_timing("activity_move", logger=logger, activity_id=activity_id):
                    try:
                        await controller.store.mutate("activities", "update", fields, match={"id": activity_id})
                    except TaskboardError as e:
                        error = str(e)
                        logger.warning(
                            "Move failed, restoring server state",
                            activity_id=activity_id,
                            source=source_container,
                            dest=dest_container,
                            error=error
                        )
                        controller.revert(patches)
                        board.order.transfer(dest_container, source_container, activity_id, old_index)
                    await controller.refetch_many([source_key, dest_key])
            finally:
                board.order.release([source_container, dest_container])

            if error is not None:
                self.notifier.failure("Could not move activity", error)
                return DropOutcome(
                    kind=DropKind.MOVE,
                    activity_id=activity_id,
                    source_container=source_container,
                    target_container=dest_container,
                    old_index=old_index,
                    new_index=new_index,
                    error=error,
                )

            await board.announce_move(self.bus, source_owner, dest_owner, origin=controller.name)
            logger.info("Activity moved", activity_id=activity_id, source=source_container, dest=dest_container)
            return DropOutcome(
                kind=DropKind.MOVE,
                activity_id=activity_id,
                source_container=source_container,
                target_container=dest_container,
                old_index=old_index,
                new_index=new_index,
                persisted=True,
            )
