# ordercore/data/database.py
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from ordercore.domain.errors import StorageError
from ordercore.utils.settings import DATABASE_URL
from ordercore.utils.logging import get_logger

logger = get_logger(__name__)

Base = declarative_base()

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
# expire_on_commit=False: obiekty zaladowane w transakcji zostaja czytelne po commit
# bez nowego zapytania (np. w trakcie wywolania bramki)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db() -> Iterator[Session]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """
    Granica transakcji: commit tylko gdy caly blok przeszedl,
    w kazdym innym przypadku rollback. Bledy SQLAlchemy -> StorageError.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Transaction rolled back: {e}")
        raise StorageError(str(e)) from e
    except BaseException:
        db.rollback()
        raise
