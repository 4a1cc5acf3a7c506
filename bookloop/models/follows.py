from sqlalchemy import Column, Integer, DateTime, ForeignKey, func
from . import Base


class FollowRelationship(Base):
    __tablename__ = 'follow_relationships'
    main_user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    followed_user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True, index=True)
    created_at = Column(DateTime, server_default=func.now())
