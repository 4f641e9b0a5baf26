from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from app.core.settings import settings

DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL.startswith("sqlite"):
    engine_args = {"connect_args": {"check_same_thread": False}}
else:
    # Exhausted pool raises sqlalchemy.exc.TimeoutError, surfaced as Unavailable.
    engine_args = {"pool_timeout": settings.DB_POOL_TIMEOUT}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, **engine_args)

# SQLite needs this for the friends -> accounts ondelete=CASCADE.
if DATABASE_URL.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
