import os

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from models.database import Base

DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./transparai.db")
engine = create_engine(
    DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 15} if "sqlite" in DATABASE_URL else {}
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db():
    Base.metadata.create_all(bind=engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
