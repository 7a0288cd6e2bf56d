import logging
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker, declarative_base

logger = logging.getLogger(__name__)

Base = declarative_base()


class Database:
    """Connexion au store, construite une fois au démarrage puis fermée à l'arrêt"""

    def __init__(self, url: str):
        connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
        self.url = url
        self.engine = create_engine(url, echo=False, connect_args=connect_args)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def connect(self):
        # échoue tout de suite si le store est injoignable
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database connected (%s)", self.engine.url.render_as_string(hide_password=True))

    def session(self) -> Session:
        return self.SessionLocal()

    def close(self):
        self.engine.dispose()
        logger.info("Database connection closed")


def get_db(request: Request) -> Iterator[Session]:
    """Dépendance sessionDB"""
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()
