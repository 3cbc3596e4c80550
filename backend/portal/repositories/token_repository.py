"""Repository for emailed token CRUD operations.

Verification and password reset tokens live in separate tables with the
same shape. Every method takes the model class so one repository serves
both purposes.
"""

import uuid
from datetime import datetime

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from portal.models.token import PasswordResetToken, VerificationToken

EmailToken = VerificationToken | PasswordResetToken
EmailTokenModel = type[VerificationToken] | type[PasswordResetToken]


class TokenRepository:
    """Stateless repository for token table operations.

    All methods are static; no instance state.
    """

    @staticmethod
    async def get_by_token(
        db: AsyncSession,
        model: EmailTokenModel,
        token: str,
    ) -> EmailToken | None:
        """Look up a token row by its token string.

        Args:
            db: Async database session.
            model: VerificationToken or PasswordResetToken.
            token: Token string from the emailed link.

        Returns:
            Token row if found, None otherwise.
        """
        stmt = select(model).where(model.token == token)
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        model: EmailTokenModel,
        *,
        user_id: uuid.UUID,
        token: str,
        expires_at: datetime,
    ) -> EmailToken:
        """Store a new token.

        Args:
            db: Async database session.
            model: VerificationToken or PasswordResetToken.
            user_id: Owner of the token.
            token: Random token string.
            expires_at: Token expiry timestamp.

        Returns:
            Created token row.
        """
        row = model(user_id=user_id, token=token, expires_at=expires_at)
        db.add(row)
        await db.flush()
        await db.refresh(row)
        return row

    @staticmethod
    async def delete_for_user(
        db: AsyncSession,
        model: EmailTokenModel,
        *,
        user_id: uuid.UUID,
    ) -> None:
        """Delete every token of this kind owned by a user.

        Args:
            db: Async database session.
            model: VerificationToken or PasswordResetToken.
            user_id: Owner of the tokens.
        """
        await db.execute(delete(model).where(model.user_id == user_id))

    @staticmethod
    async def delete(
        db: AsyncSession,
        model: EmailTokenModel,
        token_id: uuid.UUID,
    ) -> None:
        """Delete a single token row by primary key.

        Args:
            db: Async database session.
            model: VerificationToken or PasswordResetToken.
            token_id: Primary key of the row.
        """
        await db.execute(delete(model).where(model.id == token_id))
