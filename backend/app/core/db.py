import logging

from sqlmodel import Session, SQLModel, create_engine, select

from app import crud
from app.core.config import settings
from app.models import User, UserCreate

logger = logging.getLogger(__name__)

_database_uri = str(settings.SQLALCHEMY_DATABASE_URI)
_connect_args = {"check_same_thread": False} if _database_uri.startswith("sqlite") else {}

engine = create_engine(_database_uri, connect_args=_connect_args)


def init_db(session: Session) -> None:
    # Tables are created directly; there is no migration history to replay.
    SQLModel.metadata.create_all(session.get_bind())

    user = session.exec(
        select(User).where(User.email == settings.FIRST_SUPERUSER)
    ).first()
    if not user:
        user_in = UserCreate(
            email=settings.FIRST_SUPERUSER,
            password=settings.FIRST_SUPERUSER_PASSWORD,
            is_superuser=True,
        )
        user = crud.create_user(session=session, user_create=user_in)
        logger.info("Created first superuser %s", user.email)
