from typing import Optional
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session
from storefront.core.config import settings


def make_engine(database_url: str) -> Engine:
    # SQLite needs cross-thread access for the request pool and a busy timeout so
    # concurrent writers queue up instead of failing with "database is locked"
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(database_url, pool_pre_ping=True)


engine = make_engine(settings.DATABASE_URL)

def get_session():
    with Session(engine) as session:
        yield session

def create_db_and_tables(bind: Optional[Engine] = None):
    SQLModel.metadata.create_all(bind or engine)
