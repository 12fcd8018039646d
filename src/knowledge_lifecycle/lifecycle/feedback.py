"""Applying explicit user feedback to stored items."""

import logging

from knowledge_lifecycle.exceptions import StoreUnavailable
from knowledge_lifecycle.lifecycle.decision import apply_feedback_adjustment
from knowledge_lifecycle.models import KnowledgeItem, UserFeedback, utcnow
from knowledge_lifecycle.stores.base import KnowledgeStore

logger = logging.getLogger(__name__)


def adjust_item(item: KnowledgeItem, feedback: UserFeedback) -> KnowledgeItem:
    """Return a copy of the item with feedback folded into its scores.

    Both the current score and the decay base move, so later decay starts
    from the adjusted value. Strongly negative feedback flags the item for
    review; nothing is ever deleted here.
    """
    return item.copy(
        score=apply_feedback_adjustment(item.score, feedback),
        base_score=apply_feedback_adjustment(item.base_score, feedback),
        last_feedback_at=utcnow(),
        needs_review=item.needs_review or feedback.is_strongly_negative,
    )


class FeedbackService:
    """Applies feedback to every store holding an item."""

    def __init__(self, stores: list[KnowledgeStore]):
        self.stores = stores

    async def apply_feedback(self, item_id: str, feedback: UserFeedback) -> KnowledgeItem | None:
        """Adjust an item in each store that holds it.

        Returns:
            The updated item, or None when no store knows the id

        Raises:
            StoreUnavailable: If every store holding the item failed
        """
        updated: KnowledgeItem | None = None
        last_error: StoreUnavailable | None = None

        for store in self.stores:
            try:
                item = await store.get(item_id)
                if item is None:
                    continue
                adjusted = adjust_item(item, feedback)
                await store.update(adjusted)
            except StoreUnavailable as e:
                logger.warning(f"Feedback for {item_id} not applied to {store.name}: {e}")
                last_error = e
                continue

            logger.info(
                f"Feedback applied to {item_id} in {store.name}: "
                f"score {item.score:.2f} -> {adjusted.score:.2f}, needs_review={adjusted.needs_review}"
            )
            if updated is None:
                updated = adjusted

        if updated is None and last_error is not None:
            raise last_error
        return updated
