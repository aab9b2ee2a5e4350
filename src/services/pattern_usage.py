"""Pattern usage signals and the pattern feedback trail.

Both are bookkeeping: every write is attempted once, failures are logged
and never reach the caller.
"""

import asyncio
import logging
from collections.abc import Iterable

from src.db.supabase import SupabaseClient
from src.models.email_draft import PatternFeedbackEntry, PatternUsageSignal

logger = logging.getLogger(__name__)

UPDATE_PATTERN_USAGE_RPC = "update_pattern_usage"
PATTERN_FEEDBACK_TABLE = "pattern_feedback_log"


class PatternUsageTracker:
    """Forwards pattern outcomes to the store."""

    async def emit(self, signal: PatternUsageSignal) -> bool:
        """Send one usage signal to the ``update_pattern_usage`` RPC."""
        params = {
            "p_pattern_id": signal.pattern_id,
            "p_was_successful": signal.was_successful,
        }
        try:
            await SupabaseClient.run(
                "update pattern usage",
                lambda db: db.rpc(UPDATE_PATTERN_USAGE_RPC, params).execute(),
            )
        except Exception as e:
            logger.error("Error updating pattern usage for %s: %s", signal.pattern_id, e)
            return False
        return True

    async def emit_all(self, pattern_ids: Iterable[str], was_successful: bool) -> int:
        """Emit the same outcome for every pattern concurrently.

        Returns:
            Number of signals that were delivered.
        """
        signals = [
            PatternUsageSignal(pattern_id=pattern_id, was_successful=was_successful)
            for pattern_id in pattern_ids
        ]
        if not signals:
            return 0
        results = await asyncio.gather(
            *(self.emit(signal) for signal in signals), return_exceptions=True
        )
        return sum(1 for r in results if r is True)

    async def log_feedback(self, entry: PatternFeedbackEntry) -> bool:
        """Insert a ``pattern_feedback_log`` row."""
        row = entry.model_dump()
        try:
            await SupabaseClient.run(
                "record pattern feedback",
                lambda db: db.table(PATTERN_FEEDBACK_TABLE).insert(row).execute(),
            )
        except Exception as e:
            logger.error(
                "Error recording pattern feedback for %s on draft %s: %s",
                entry.pattern_id,
                entry.draft_id,
                e,
            )
            return False
        return True

    async def record_edit(self, entry: PatternFeedbackEntry, was_successful: bool) -> bool:
        """Signal an edit outcome for one pattern and log its feedback entry."""
        delivered = await self.emit(
            PatternUsageSignal(pattern_id=entry.pattern_id, was_successful=was_successful)
        )
        await self.log_feedback(entry)
        return delivered


_tracker: PatternUsageTracker | None = None


def get_pattern_usage_tracker() -> PatternUsageTracker:
    """Get the singleton PatternUsageTracker instance."""
    global _tracker
    if _tracker is None:
        _tracker = PatternUsageTracker()
    return _tracker
