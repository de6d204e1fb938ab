"""
User persistence and the identity upsert bridge.

Maps a verified provider identity onto a local User: the User row is matched
by email, the Account row by (provider, subject). Both writes share one
transaction.
"""

from typing import List, Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from identity_mcp.auth.errors import PersistenceFailure
from identity_mcp.auth.id_token import VerifiedIdentity
from identity_mcp.models import Account, User


class UserRepository:
    """Reads and writes User/Account rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert_identity(self, provider: str, identity: VerifiedIdentity) -> User:
        """
        Create or update the User for an identity and link the Account.

        Concurrent first logins for the same identity race on the unique
        email and (provider, subject) constraints. The loser's transaction is
        rolled back and replayed once, which then finds the committed rows.

        Args:
            provider: Provider name (e.g. "google", "auth0")
            identity: Verified identity from the token

        Returns:
            The resulting User

        Raises:
            PersistenceFailure: If the transaction fails; nothing is committed
        """
        try:
            try:
                return await self._upsert_once(provider, identity)
            except IntegrityError:
                logger.info(
                    f"Concurrent upsert for {provider}:{identity.subject}, retrying transaction"
                )
            return await self._upsert_once(provider, identity)
        except SQLAlchemyError as e:
            logger.error(f"User upsert failed for {provider}:{identity.subject}: {e}")
            raise PersistenceFailure(f"Failed to persist user {identity.email}") from e

    async def _upsert_once(self, provider: str, identity: VerifiedIdentity) -> User:
        async with self._session_factory() as session:
            async with session.begin():
                user = await self._upsert_user(session, identity)
                await self._link_account(session, provider, identity.subject, user)
        return user

    async def _upsert_user(self, session: AsyncSession, identity: VerifiedIdentity) -> User:
        result = await session.execute(select(User).where(User.email == identity.email))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(email=identity.email, name=identity.name, avatar_url=identity.picture)
            session.add(user)
            await session.flush()
            logger.info(f"Created user {user.email} ({user.id})")
            return user

        if identity.name is not None:
            user.name = identity.name
        if identity.picture is not None:
            user.avatar_url = identity.picture
        return user

    async def _link_account(
        self, session: AsyncSession, provider: str, subject: str, user: User
    ) -> None:
        result = await session.execute(
            select(Account).where(Account.provider == provider, Account.subject == subject)
        )
        account = result.scalar_one_or_none()

        if account is None:
            session.add(Account(provider=provider, subject=subject, user_id=user.id))
            logger.info(f"Linked {provider} account to user {user.id}")
        elif account.user_id != user.id:
            logger.warning(
                f"Repointing {provider} account from user {account.user_id} to {user.id}"
            )
            account.user_id = user.id

    async def find_user_by_email(self, email: str) -> Optional[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User).where(User.email == email))
            return result.scalar_one_or_none()

    async def list_users(self) -> List[User]:
        """All users, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(select(User).order_by(User.created_at.desc()))
            return list(result.scalars().all())

    async def list_accounts(self, user_id: Optional[str] = None) -> List[Account]:
        async with self._session_factory() as session:
            query = select(Account).order_by(Account.id)
            if user_id is not None:
                query = query.where(Account.user_id == user_id)
            result = await session.execute(query)
            return list(result.scalars().all())
