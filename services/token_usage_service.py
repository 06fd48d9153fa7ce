import logging
import math
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import models
from config import config

logger = logging.getLogger("brify_sync.tokens")

SYNC_EMBEDDING_OPERATION = "sync_embedding"
BYTES_PER_EMBEDDING_VALUE = 4  # float32


def estimate_tokens(text: Optional[str]) -> int:
    """Rough Gemini token count: one token every four characters."""
    return math.ceil(len(text or "") / 4)


class TokenUsageService:
    """
    Token ledger (user_tokens_usage) and storage counter (users.used_storage_bytes).

    Both counters are bumped with a single UPDATE ... SET x = x + n, so
    concurrent sync runs for the same user do not lose increments.
    """

    def __init__(self, db: Session):
        self.db = db

    def _token_limit_for(self, user_id: str) -> int:
        user = self.db.query(models.User).filter_by(id=user_id).first()
        if user and user.current_plan_id:
            plan = self.db.query(models.Plan).filter_by(id=user.current_plan_id).first()
            if plan and plan.token_limit_usage:
                return plan.token_limit_usage
        return config.DEFAULT_TOKEN_LIMIT

    def _increment_tokens(self, user_id: str, tokens: int, operation: str) -> int:
        return (
            self.db.query(models.UserTokensUsage)
            .filter(models.UserTokensUsage.user_id == user_id)
            .update(
                {
                    models.UserTokensUsage.tokens_used: func.coalesce(models.UserTokensUsage.tokens_used, 0) + tokens,
                    models.UserTokensUsage.operation: operation,
                    models.UserTokensUsage.last_updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )

    def track_usage(self, user_id: Optional[str], tokens: int, operation: str = SYNC_EMBEDDING_OPERATION) -> None:
        if not user_id or tokens <= 0:
            return

        if self._increment_tokens(user_id, tokens, operation):
            self.db.commit()
            logger.info(f"Token usage tracked: {tokens} tokens for operation: {operation}")
            return

        row = models.UserTokensUsage(
            user_id=user_id,
            tokens_used=tokens,
            total_tokens=self._token_limit_for(user_id),
            operation=operation,
            last_updated_at=datetime.now(timezone.utc),
        )
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            # Another run created the ledger row in between
            self.db.rollback()
            self._increment_tokens(user_id, tokens, operation)
            self.db.commit()
        logger.info(f"Token usage tracked: {tokens} tokens for operation: {operation}")

    def increment_storage(self, user_id: Optional[str], added_bytes: int) -> bool:
        """Returns False when the user row does not exist."""
        if not user_id or added_bytes <= 0:
            return False

        updated = (
            self.db.query(models.User)
            .filter(models.User.id == user_id)
            .update(
                {models.User.used_storage_bytes: func.coalesce(models.User.used_storage_bytes, 0) + added_bytes},
                synchronize_session=False,
            )
        )
        self.db.commit()
        if not updated:
            logger.warning(f"Storage not updated: user {user_id} not found")
            return False
        return True
