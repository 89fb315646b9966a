"""Insert-or-bump decision for incoming clipboard items.

A candidate duplicates a stored item when both share the same kind and dedup
key (collapsed whitespace for text and rich text, the raw reference for
images and files). Duplicates are not inserted again: the stored item's
``created_at`` is moved to the candidate's so it resurfaces at the top of the
history, and everything else about it (tags, pin, source app) is kept.
"""

import logging
from dataclasses import dataclass

from haste.models import NewItem
from haste.storage import ItemRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Insert:
    pass


@dataclass(frozen=True)
class BumpExisting:
    item_id: int


DedupDecision = Insert | BumpExisting


@dataclass(frozen=True)
class AddResult:
    item_id: int
    bumped: bool = False


class DedupPolicy:
    def __init__(self, repository: ItemRepository):
        self._repository = repository

    def resolve(self, candidate: NewItem) -> DedupDecision:
        # When several rows share a key (possible through plain inserts) the
        # most recent one is bumped.
        existing_id = self._repository.find_duplicate(candidate.kind, candidate.dedup_key())
        if existing_id is None:
            return Insert()
        return BumpExisting(existing_id)

    def apply(self, candidate: NewItem) -> AddResult:
        """Resolve and carry out the decision as one critical section."""
        with self._repository.locked():
            decision = self.resolve(candidate)
            if isinstance(decision, BumpExisting):
                self._repository.update_timestamp(decision.item_id, candidate.created_at)
                logger.debug("Bumped duplicate item %d to %d", decision.item_id, candidate.created_at)
                return AddResult(decision.item_id, bumped=True)
            return AddResult(self._repository.insert(candidate))
