# flows/database.py
from sqlalchemy import create_engine, Column, Integer, Text, TIMESTAMP, JSON, String
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker
from datetime import datetime, timezone

from core.config import DATABASE_URL

# Sessions are opened from asyncio.to_thread workers, so SQLite connections cross threads
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Email(Base):
    __tablename__ = "emails"
    id = Column(Integer, primary_key=True, index=True)
    to = Column("to", Text, nullable=False)
    cc = Column(Text, nullable=True)
    bcc = Column(Text, nullable=True)
    subject = Column(Text, nullable=False)
    body = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)
    attachments = Column(JSON, nullable=True)          # [{"name": ..., "size": ...}]
    sent_at = Column(TIMESTAMP(timezone=True), default=_utcnow)
    follow_up_at = Column(TIMESTAMP(timezone=True), nullable=True, index=True)
    user_email = Column(String(255), nullable=False, index=True)


def init_db():
    Base.metadata.create_all(bind=engine)
