from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class JackpotPoolRecord(Base):
    __tablename__ = 'jackpot_pool'
    id = Column(Integer, primary_key=True)
    group_id = Column(String(64), unique=True, nullable=False, index=True)
    # [{"tier": "mega", "value": "1234.50", "floor": "1000"}, ...]; amounts kept as strings
    tiers = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc),
                        onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    def __repr__(self):
        return f"<JackpotPoolRecord group={self.group_id}>"
