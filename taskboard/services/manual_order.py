"""Manual order store - client-side advisory ordering per drag container."""

from typing import Iterable, Optional

from taskboard.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)


def _merge(stored: list[str], fetched: list[str]) -> list[str]:
    present = set(fetched)
    kept = [item_id for item_id in stored if item_id in present]
    known = set(kept)
    return kept + [item_id for item_id in fetched if item_id not in known]


def array_move(order: list[str], old_index: int, new_index: int) -> list[str]:
    """Return a copy with the item at ``old_index`` moved to ``new_index``."""
    moved = list(order)
    item = moved.pop(old_index)
    moved.insert(new_index, item)
    return moved


class ManualOrderStore:
    """Ordered id lists keyed by container id. Never persisted."""

    def __init__(self):
        self._orders: dict[str, list[str]] = {}
        self._held: set[str] = set()
        self._generations: dict[str, Optional[int]] = {}

    def get(self, container: str) -> Optional[list[str]]:
        order = self._orders.get(container)
        return list(order) if order is not None else None

    def seed(self, container: str, ids: Iterable[str]) -> list[str]:
        self._orders[container] = list(dict.fromkeys(ids))
        return list(self._orders[container])

    def resolve(self, container: str, fetched_ids: Iterable[str], generation: Optional[int] = None) -> list[str]:
        """Order to display for the container's current rows.

        ``generation`` identifies the fetch the rows came from. A new generation
        reseeds from fetch order unless the container is held, in which case the
        local order is kept (filtered to present ids) until the hold is released.
        Within one generation local changes keep the stored order, with ids that
        appeared locally appended in fetch order.
        """
        fetched = list(dict.fromkeys(fetched_ids))
        stored = self._orders.get(container)

        if stored is None:
            self._generations[container] = generation
            return self.seed(container, fetched)

        if container in self._held:
            return _merge(stored, fetched)

        if generation is not None and generation != self._generations.get(container):
            logger.debug("Manual order reseeded after reload", container=container, generation=generation)
            self._generations[container] = generation
            return self.seed(container, fetched)

        self._orders[container] = _merge(stored, fetched)
        return list(self._orders[container])

    def restore(self, container: str, fetched_ids: Iterable[str], generation: Optional[int] = None) -> list[str]:
        """Return to manual sorting: keep the stored order if every stored id is still present."""
        fetched = list(dict.fromkeys(fetched_ids))
        stored = self._orders.get(container)
        self._generations[container] = generation

        if stored is not None and set(stored).issubset(fetched):
            self._orders[container] = _merge(stored, fetched)
            return list(self._orders[container])

        logger.debug("Manual order reseeded", container=container, fetched=len(fetched))
        return self.seed(container, fetched)

    def reorder(self, container: str, active_id: str, over_id: str) -> Optional[tuple[int, int]]:
        """Move ``active_id`` to the slot of ``over_id``; None when nothing changes."""
        order = self._orders.get(container)
        if not order or active_id not in order or over_id not in order:
            return None

        old_index = order.index(active_id)
        new_index = order.index(over_id)
        if old_index == new_index:
            return None

        self._orders[container] = array_move(order, old_index, new_index)
        return old_index, new_index

    def transfer(self, source: str, dest: str, item_id: str, index: Optional[int] = None) -> int:
        """Take ``item_id`` out of ``source`` and insert it into ``dest``; returns the new index."""
        source_order = self._orders.get(source)
        if source_order and item_id in source_order:
            source_order.remove(item_id)

        dest_order = self._orders.setdefault(dest, [])
        if item_id in dest_order:
            dest_order.remove(item_id)
        position = 0 if index is None else max(0, min(index, len(dest_order)))
        dest_order.insert(position, item_id)
        return position

    def hold(self, containers: Iterable[str]) -> None:
        self._held.update(containers)

    def release(self, containers: Iterable[str]) -> None:
        self._held.difference_update(containers)

    def is_held(self, container: str) -> bool:
        return container in self._held

    def forget(self, container: str) -> None:
        self._orders.pop(container, None)
        self._generations.pop(container, None)
        self._held.discard(container)
