import os
import logging
from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

logger = logging.getLogger(__name__)

# Prefer explicit DATABASE_URL env var. If not provided, construct a local
# SQLite URL in a `data/` folder adjacent to the package directory.
env_db = os.getenv("DATABASE_URL")
if env_db:
    DATABASE_URL = env_db
else:
    pkg_root = Path(__file__).resolve().parents[1]
    data_dir = pkg_root / "data"
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
    except OSError:
        # read-only install location; fall back to an in-memory DB
        data_dir = None
    if data_dir:
        db_file = data_dir / "assettrack.db"
        # Use POSIX path style for SQLAlchemy URL on Windows as well
        DATABASE_URL = f"sqlite:///{db_file.as_posix()}"
    else:
        DATABASE_URL = "sqlite:///:memory:"


def build_engine(url: str):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def create_db_and_tables(bind=None):
    # models must be imported so their tables are registered on Base.metadata
    from . import models  # noqa: F401

    bind = bind or engine
    logger.info("Creating database tables on %s", bind.url.render_as_string(hide_password=True))
    Base.metadata.create_all(bind=bind)
