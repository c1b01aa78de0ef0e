"""
User service — registration, login and the current user's account.

Email and username uniqueness is checked up front so the client gets a
field-level message; the unique constraints in the schema still back
it up, and a constraint violation that slips through a race is reported
the same way.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import AuthError, ValidationError
from app.models import User
from app.schemas import UserLogin, UserRegister, UserUpdate
from app.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

TAKEN = "has already been taken"


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _user_to_dict(user: User) -> dict:
    """Serialise the authenticated user, including a fresh token."""
    return {
        "email": user.email,
        "token": create_access_token(user.id),
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


async def _ensure_available(
    db: AsyncSession,
    email: str | None,
    username: str | None,
    exclude_id: int | None = None,
) -> None:
    """Raise ValidationError if *email* or *username* belongs to another user."""
    clauses = []
    if email is not None:
        clauses.append(User.email == email)
    if username is not None:
        clauses.append(User.username == username)
    if not clauses:
        return

    q = select(User.email, User.username).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    for taken_email, taken_username in (await db.execute(q)).all():
        if email is not None and taken_email == email:
            raise ValidationError(TAKEN, field="email")
        if username is not None and taken_username == username:
            raise ValidationError(TAKEN, field="username")


async def _flush_unique(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError:
        raise ValidationError(TAKEN, field="user")


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def register_user(db: AsyncSession, data: UserRegister) -> dict:
    """Create a new user with a hashed password and return it with a token."""
    email = data.email.lower()
    await _ensure_available(db, email, data.username)

    user = User(
        email=email,
        username=data.username,
        hashed_password=hash_password(data.password),
    )
    db.add(user)
    await _flush_unique(db)

    logger.info("User registered: id=%d username=%s", user.id, user.username)
    return _user_to_dict(user)


async def login_user(db: AsyncSession, data: UserLogin) -> dict:
    """
    Verify credentials and return the user with a token.

    Unknown email and wrong password produce the same AuthError so the
    response does not reveal which accounts exist.
    """
    result = await db.execute(select(User).where(User.email == data.email.lower()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(data.password, user.hashed_password):
        logger.warning("Failed login for email=%s", data.email)
        raise AuthError("email or password is invalid")

    logger.info("User logged in: id=%d", user.id)
    return _user_to_dict(user)


def get_current(user: User) -> dict:
    return _user_to_dict(user)


async def update_user(db: AsyncSession, user: User, data: UserUpdate) -> dict:
    """
    Partially update *user*.  ``bio`` and ``image`` may be cleared with
    null; null for email, username or password leaves them unchanged.
    """
    update_data = data.model_dump(exclude_unset=True)
    if update_data.get("email") is not None:
        update_data["email"] = update_data["email"].lower()

    await _ensure_available(
        db,
        update_data.get("email"),
        update_data.get("username"),
        exclude_id=user.id,
    )

    password = update_data.pop("password", None)
    if password is not None:
        user.hashed_password = hash_password(password)

    for field, value in update_data.items():
        if value is None and field in ("email", "username"):
            continue
        setattr(user, field, value)

    await _flush_unique(db)
    return _user_to_dict(user)
