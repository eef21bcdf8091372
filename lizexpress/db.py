# lizexpress/db.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from lizexpress.core.settings import settings

_connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    # nodig voor SQLite met FastAPI threads en asyncio.to_thread
    _connect_args = {"check_same_thread": False}

engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
