"""ActivitySelector -- reads over the activity feed."""

from sqlalchemy import select

from fee_ledger.models.activity_log import ActivityLogModel
from fee_ledger.selectors.base import BaseSelector


class ActivitySelector(BaseSelector):
    def recent(self, limit: int = 20) -> list[ActivityLogModel]:
        """Latest entries, newest first."""
        return list(
            self.session.execute(
                select(ActivityLogModel)
                .order_by(ActivityLogModel.created_at.desc())
                .limit(limit)
            ).scalars()
        )
