from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import get_settings


def resolve_database_url(url: str) -> str:
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg2://", 1)

    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+psycopg2://", 1)

    return url


def build_engine(url: str):
    url = resolve_database_url(url)

    if url.startswith("postgresql+psycopg2://"):
        return create_engine(
            url,
            pool_pre_ping=True,
            connect_args={"sslmode": "require"},
        )

    return create_engine(
        url,
        connect_args={"check_same_thread": False},
    )


engine = build_engine(get_settings().DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
