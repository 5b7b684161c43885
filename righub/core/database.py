from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from righub.core.config import get_settings

settings = get_settings()


def normalize_database_url(url: str) -> str:
    # Hosted Postgres hands out 'postgres://', SQLAlchemy requires 'postgresql://'
    if url and url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def build_engine(url: str, **kwargs):
    url = normalize_database_url(url)
    is_sqlite = url.startswith("sqlite")
    engine = create_engine(
        url,
        # "check_same_thread" is ONLY for SQLite
        connect_args={"check_same_thread": False} if is_sqlite else {},
        **kwargs,
    )

    if is_sqlite:
        # SQLite ignores ON DELETE CASCADE unless foreign keys are switched on
        @event.listens_for(engine, "connect")
        def _enable_sqlite_fks(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    from sqlalchemy.orm import Session
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
