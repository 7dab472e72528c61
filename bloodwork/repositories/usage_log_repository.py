from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.database.models import OpenAIUsageLog
from bloodwork.repositories.base_repository import BaseRepository


class UsageLogRepository(BaseRepository[OpenAIUsageLog]):
    """Repository for model token usage rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, OpenAIUsageLog)
