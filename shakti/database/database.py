# database/database.py
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from shakti.config import DATABASE_URL, SQL_ECHO

connect_args = {}
engine_options = {"pool_pre_ping": True}
if DATABASE_URL.startswith("sqlite"):
    # Worker threads (broadcast) open their own sessions on the same file
    connect_args = {"check_same_thread": False}
else:
    engine_options.update(pool_size=10, max_overflow=20, pool_timeout=30)

# SQLAlchemy engine (sync version)
engine = create_engine(
    DATABASE_URL,
    echo=SQL_ECHO,
    connect_args=connect_args,
    **engine_options
)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)

# Base class for all ORM models
Base = declarative_base()

# Dependency to get DB session in FastAPI routes
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
