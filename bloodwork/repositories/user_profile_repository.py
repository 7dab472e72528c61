from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bloodwork.database.models import UserProfile
from bloodwork.repositories.base_repository import BaseRepository
from bloodwork.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UserProfileRepository(BaseRepository[UserProfile]):
    def __init__(self, session: AsyncSession):
        super().__init__(session, UserProfile)

    async def get_by_user_id(self, user_id: UUID) -> Optional[UserProfile]:
        try:
            result = await self.session.execute(
                select(UserProfile).where(UserProfile.user_id == user_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            LOGGER.error(f"Error loading profile for user {user_id}: {str(e)}", exc_info=True)
            raise
