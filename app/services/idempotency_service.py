"""
Idempotent replay for mutating operations.

A client sends an `Idempotency-Key` header with a mutating request. The first
successful response is stored in the same transaction as the ledger writes,
so a retry with the same key gets the stored response back instead of
applying stock or fund effects a second time.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.actor import ActorContext
from app.core.exceptions import ValidationError
from app.models.idempotency import IdempotencyRecord


logger = logging.getLogger(__name__)

MAX_KEY_LENGTH = 100


class IdempotencyService:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_stored_response(
        self,
        key: str,
        actor: ActorContext,
        operation: str,
    ) -> Optional[dict[str, Any]]:
        """Return the stored response for `key`, or None on first use."""
        result = await self.db.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.key == key,
                IdempotencyRecord.user_id == actor.user_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        if record.operation != operation:
            raise ValidationError("Idempotency-Key has already been used for a different operation.")
        return record.response

    async def store_response(
        self,
        key: str,
        actor: ActorContext,
        operation: str,
        response: dict[str, Any],
    ) -> IdempotencyRecord:
        record = IdempotencyRecord(
            key=key,
            user_id=actor.user_id,
            operation=operation,
            response=response,
        )
        self.db.add(record)
        await self.db.flush()
        return record

    async def run(
        self,
        key: Optional[str],
        actor: ActorContext,
        operation: str,
        handler: Callable[[], Awaitable[BaseModel]],
    ) -> dict[str, Any]:
        """
        Execute `handler` at most once per (key, actor).

        Without a key the handler always runs. The handler's response model is
        stored in JSON form so a replay returns exactly what the first call did.
        """
        if key is not None:
            key = key.strip()
            if not key or len(key) > MAX_KEY_LENGTH:
                raise ValidationError(f"Idempotency-Key must be 1-{MAX_KEY_LENGTH} characters.")
            stored = await self.get_stored_response(key, actor, operation)
            if stored is not None:
                logger.info(f"Replaying {operation} for user {actor.user_id} (key={key})")
                return stored

        response = (await handler()).model_dump(mode="json")

        if key is not None:
            await self.store_response(key, actor, operation, response)
        return response
