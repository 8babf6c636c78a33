from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase
from sqlalchemy.pool import NullPool

from tradelink.config import DATABASE_URL, DB_STATEMENT_TIMEOUT_MS

# ---------------------------------------------------------
# SQLAlchemy Base class
# ---------------------------------------------------------
class Base(DeclarativeBase):
    pass

# ---------------------------------------------------------
# Create engine
# ---------------------------------------------------------
# Every statement is bounded server-side so a stuck lock surfaces as an
# error instead of hanging a claim.
_connect_args = {}
if DATABASE_URL.startswith("postgresql"):
    _connect_args["options"] = f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}"

# NullPool prevents connection reuse issues during local dev / hot reload.
engine = create_engine(
    DATABASE_URL,
    poolclass=NullPool,
    connect_args=_connect_args,
    echo=False,  # set True to log SQL
)

# ---------------------------------------------------------
# SessionLocal factory
# ---------------------------------------------------------
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# ---------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------
def get_db():
    """Yields a database session for each request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
