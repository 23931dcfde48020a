# SQLAlchemy models for Users and their saved Analyses
# The User row is the aggregate that owns plan quota, AI settings, AI budget and AI usage stats
from sqlalchemy import Boolean, Column, String, DateTime, Text, Integer, Float, ForeignKey, JSON
from sqlalchemy.orm import declarative_base, relationship
from uuid import uuid4
from datetime import datetime, UTC

Base = declarative_base()


def utcnow():
    return datetime.now(UTC)


class User(Base):
    __tablename__ = 'users'
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    # Subscription plan and monthly analysis quota
    plan = Column(String, nullable=False, default='free')
    monthly_quota_used = Column(Integer, nullable=False, default=0)
    monthly_quota_limit = Column(Integer, nullable=False, default=20)
    last_quota_reset = Column(DateTime, default=utcnow)

    # AI settings; a NULL allocation means settings were never initialized
    ai_preferred_model = Column(String, nullable=False, default='auto')
    ai_allow_premium = Column(Boolean, nullable=False, default=True)
    ai_budget_allocated = Column(Float, nullable=True)
    ai_budget_used = Column(Float, nullable=False, default=0.0)
    ai_budget_last_reset = Column(DateTime, nullable=True)

    # AI usage stats (monotonic counters)
    total_analyses = Column(Integer, nullable=False, default=0)
    gpt_analyses = Column(Integer, nullable=False, default=0)
    gemini_analyses = Column(Integer, nullable=False, default=0)
    total_ai_cost = Column(Float, nullable=False, default=0.0)
    ai_usage_last_updated = Column(DateTime, nullable=True)

    analyses = relationship('Analysis', back_populates='user', order_by='Analysis.created_at')

    @property
    def has_ai_settings(self) -> bool:
        return self.ai_budget_allocated is not None


class Analysis(Base):
    __tablename__ = 'analyses'
    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, ForeignKey('users.id'), nullable=False, index=True)
    source = Column(String, nullable=False)
    summary = Column(Text, nullable=False)
    score = Column(String, nullable=False)
    clauses = Column(JSON, nullable=False)
    model = Column(String)           # Backend that served the analysis
    complexity = Column(Float)
    cost_usd = Column(Float, default=0.0)
    created_at = Column(DateTime, default=utcnow)
    user = relationship('User', back_populates='analyses')
