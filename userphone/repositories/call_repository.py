from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import structlog
from sqlalchemy import func, update
from sqlalchemy import delete as sql_delete
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload

from userphone.models.api.calls import (
    ActiveCall,
    CallMessage,
    CallRecord,
    CallStatus,
    utcnow,
)
from userphone.models.db.call_message_model import CallMessageModel
from userphone.models.db.call_model import CallModel
from userphone.models.db.call_participant_model import (
    CallParticipantModel,
    CallParticipantUserModel,
)
from userphone.repositories.base_repository import BaseRepository

logger = structlog.get_logger(__name__)


class CallRepository(BaseRepository[CallModel, CallRecord]):
    """Repository for call, participant and message rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__(session_factory, CallModel)

    async def get_by_id(self, id: str) -> Optional[CallRecord]:
        """Get a call by ID with its participants loaded."""
        async with self.session_factory() as db:
            query = (
                select(self.model_class)
                .where(self.model_class.id == UUID(id))
                .options(selectinload(self.model_class.participants))
            )  # type: ignore
            result = await db.execute(query)
            db_model = result.scalar_one_or_none()
            return self._to_pydantic(db_model) if db_model else None

    async def create_call(self, call_id: str, initiator_id: str) -> None:
        """Record a queued call request before it is matched."""
        now = utcnow()
        await self.create(
            CallRecord(
                id=call_id,
                initiator_id=initiator_id,
                status=CallStatus.QUEUED,
                start_time=now,
                created_at=now,
            )
        )

    async def create_active_call(self, call: ActiveCall) -> None:
        """Persist a matched call with its participants and their users at once."""
        async with self.session_factory() as db:
            db_model = CallModel(
                id=UUID(call.id),
                initiator_id=call.initiator_id,
                status=CallStatus.ACTIVE.value,
                start_time=call.start_time,
                created_at=call.created_at,
                participants=[
                    CallParticipantModel(
                        channel_id=participant.channel_id,
                        guild_id=participant.guild_id,
                        webhook_url=participant.webhook_url,
                        message_count=participant.message_count,
                        joined_at=participant.joined_at,
                        users=[
                            CallParticipantUserModel(user_id=user_id)
                            for user_id in sorted(participant.users)
                        ],
                    )
                    for participant in call.participants
                ],
            )
            db.add(db_model)
            await db.commit()

    async def update_call_status(
        self,
        call_id: str,
        status: CallStatus,
        end_time: Optional[datetime] = None,
    ) -> bool:
        """Update a call's status (and end time when ending it)."""
        values: Dict[str, Any] = {"status": status.value, "updated_at": func.now()}
        if end_time is not None:
            values["end_time"] = end_time

        async with self.session_factory() as db:
            query = (
                update(CallModel).where(CallModel.id == UUID(call_id)).values(**values)
            )
            result = await db.execute(query)
            await db.commit()
            return bool(result.rowcount)

    async def _get_participant_id(
        self, db: AsyncSession, call_id: str, channel_id: str
    ) -> Optional[UUID]:
        query = select(CallParticipantModel.id).where(
            CallParticipantModel.call_id == UUID(call_id),
            CallParticipantModel.channel_id == channel_id,
        )
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def add_user_to_participant(
        self, call_id: str, channel_id: str, user_id: str
    ) -> bool:
        """Upsert a participant user; a rejoining user has left_at cleared."""
        async with self.session_factory() as db:
            participant_id = await self._get_participant_id(db, call_id, channel_id)
            if participant_id is None:
                return False

            query = (
                pg_insert(CallParticipantUserModel)
                .values(participant_id=participant_id, user_id=user_id)
                .on_conflict_do_update(
                    constraint="uq_call_participant_user",
                    set_={"left_at": None},
                )
            )
            await db.execute(query)
            await db.commit()
            return True

    async def remove_user_from_participant(
        self, call_id: str, channel_id: str, user_id: str
    ) -> bool:
        """Mark a participant user as having left."""
        async with self.session_factory() as db:
            participant_id = await self._get_participant_id(db, call_id, channel_id)
            if participant_id is None:
                return False

            query = (
                update(CallParticipantUserModel)
                .where(
                    CallParticipantUserModel.participant_id == participant_id,
                    CallParticipantUserModel.user_id == user_id,
                )
                .values(left_at=datetime.now(timezone.utc))
            )
            result = await db.execute(query)
            await db.commit()
            return bool(result.rowcount)

    async def add_message(
        self, call_id: str, channel_id: str, message: CallMessage
    ) -> bool:
        """Store a relayed message and bump the sender side's message count.

        A call row that no longer exists is not an error: the message is
        dropped with a warning and False is returned.
        """
        async with self.session_factory() as db:
            db.add(
                CallMessageModel(
                    call_id=UUID(call_id),
                    author_id=message.author_id,
                    author_username=message.author_username,
                    content=message.content,
                    timestamp=message.timestamp,
                    attachment_url=message.attachment_url,
                )
            )
            try:
                # Autoflush sends the insert before the counter update
                await db.execute(
                    update(CallParticipantModel)
                    .where(
                        CallParticipantModel.call_id == UUID(call_id),
                        CallParticipantModel.channel_id == channel_id,
                    )
                    .values(message_count=CallParticipantModel.message_count + 1)
                )
                await db.commit()
            except IntegrityError:
                await db.rollback()
                logger.warning(
                    "Call not found when storing message", call_id=call_id
                )
                return False
            return True

    async def get_call_stats(self) -> Dict[str, int]:
        """Count calls per status."""
        async with self.session_factory() as db:
            query = select(CallModel.status, func.count()).group_by(CallModel.status)
            result = await db.execute(query)
            counts = {status.value: 0 for status in CallStatus}
            for status, count in result.all():
                counts[status] = int(count)
            return counts

    async def cleanup_old_calls(self, older_than_hours: int = 48) -> int:
        """Delete ENDED calls whose end time is older than the cutoff."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=older_than_hours)
        async with self.session_factory() as db:
            query = sql_delete(CallModel).where(
                CallModel.status == CallStatus.ENDED.value,
                CallModel.end_time < cutoff,
            )
            result = await db.execute(query)
            await db.commit()
            return int(result.rowcount or 0)

    def _to_pydantic(self, db_model: Any) -> CallRecord:
        """Convert SQLAlchemy CallModel to Pydantic CallRecord."""
        return CallRecord(
            id=str(db_model.id),
            initiator_id=db_model.initiator_id,
            status=CallStatus(db_model.status),
            start_time=db_model.start_time,
            end_time=db_model.end_time,
            created_at=db_model.created_at,
            channel_ids=[p.channel_id for p in db_model.participants],
        )

    def _from_pydantic(self, pydantic_model: CallRecord) -> CallModel:
        """Convert Pydantic CallRecord to SQLAlchemy CallModel."""
        return CallModel(
            id=UUID(pydantic_model.id),
            initiator_id=pydantic_model.initiator_id,
            status=pydantic_model.status.value,
            start_time=pydantic_model.start_time,
            end_time=pydantic_model.end_time,
            created_at=pydantic_model.created_at,
        )
