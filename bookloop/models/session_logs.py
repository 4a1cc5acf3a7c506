from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from . import Base


class SessionLog(Base):
    """One login. end_time is written once; a closed session issues no tokens."""
    __tablename__ = 'session_logs'
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    ip_address = Column(String(45), nullable=True)
    device_info = Column(Text, nullable=True)

    user = relationship('User', back_populates='sessions')
    tokens = relationship('Token', back_populates='session', cascade='all, delete-orphan', passive_deletes=True)

    @property
    def is_open(self) -> bool:
        return self.end_time is None
