import os
from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import sessionmaker, declarative_base
from dotenv import load_dotenv

# Load .env file with explicit UTF-8 encoding
load_dotenv(encoding='utf-8')

DEFAULT_DATABASE_URL = "sqlite:///./points_ledger.db"


def database_url() -> str:
    return os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL


def build_engine(url: str):
    url = make_url(url)

    connect_args = {}
    if url.get_backend_name() == "postgresql":
        connect_args = {"options": "-c timezone=utc"}
    elif url.get_backend_name() == "sqlite":
        # request handlers run in a threadpool
        connect_args = {"check_same_thread": False}

    return create_engine(url, connect_args=connect_args)


DATABASE_URL = database_url()

engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
