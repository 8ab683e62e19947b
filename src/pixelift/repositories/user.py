"""User repository for Pixelift backend.

Doubles as the credit ledger: balance changes are single conditional UPDATE
statements so concurrent debits can never overdraw an account.
"""

from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from pixelift.models.user import User


class UserRepository:
    """Repository for User entities and their credit balance.

    Methods:
    - get_by_id: Retrieve user by UUID
    - get_by_email: Case-insensitive email lookup
    - add: Persist new user
    - get_balance: Current credit balance
    - debit: Atomic conditional decrement
    - credit: Atomic increment
    """

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Retrieve user by UUID.

        Args:
            user_id: User's unique identifier

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(User.id == user_id).execution_options(populate_existing=True)  # type: ignore[arg-type]
        )
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Retrieve user by email (case-insensitive).

        Args:
            email: Account email address

        Returns:
            User if found, None otherwise
        """
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def add(self, user: User) -> User:
        """Persist new user to database.

        Args:
            user: User entity to persist

        Returns:
            Persisted user with generated ID
        """
        user.email = user.email.strip().lower()
        self.session.add(user)
        await self.session.flush()
        return user

    async def get_balance(self, user_id: UUID) -> int | None:
        """Read the user's current credit balance.

        Args:
            user_id: User's unique identifier

        Returns:
            Credit balance, or None if the user does not exist
        """
        result = await self.session.execute(select(User.credits).where(User.id == user_id))  # type: ignore[arg-type]
        return result.scalar_one_or_none()

    async def debit(self, user_id: UUID, amount: int = 1) -> int | None:
        """Atomically decrement the balance if it covers ``amount``.

        Query:
            UPDATE users SET credits = credits - :amount
            WHERE id = :user_id AND credits >= :amount

        The balance check and the decrement happen in one statement, so two
        concurrent debits against a balance of 1 yield exactly one success.

        Args:
            user_id: User's unique identifier
            amount: Credits to take (must be positive)

        Returns:
            New balance on success, None if the balance was insufficient
            or the user does not exist

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, User.credits >= amount)  # type: ignore[arg-type]
            .values(credits=User.credits - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None
        return await self.get_balance(user_id)

    async def credit(self, user_id: UUID, amount: int) -> int | None:
        """Atomically increment the balance.

        Args:
            user_id: User's unique identifier
            amount: Credits to add (must be positive)

        Returns:
            New balance, or None if the user does not exist

        Raises:
            ValueError: If amount is not positive
        """
        if amount <= 0:
            raise ValueError("amount must be positive")

        result = await self.session.execute(
            update(User)
            .where(User.id == user_id)  # type: ignore[arg-type]
            .values(credits=User.credits + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:  # type: ignore[attr-defined]
            return None
        return await self.get_balance(user_id)
