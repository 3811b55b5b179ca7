from sqlmodel import SQLModel, create_engine, Session
from config import settings

# SQLite needs the same-thread check off for FastAPI's threadpool
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)

def create_db_and_tables():
    # Import table models so they register on SQLModel.metadata
    import apps.auth.models  # noqa: F401
    import apps.core.models  # noqa: F401
    import apps.hive.models  # noqa: F401

    SQLModel.metadata.create_all(engine)

def get_session():
    with Session(engine) as session:
        yield session
