import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Enum, Index
from sqlalchemy.orm import relationship
from . import Base


class TokenType(str, enum.Enum):
    ACCESS = 'access'
    REFRESH = 'refresh'
    EMAIL_CONFIRMATION = 'emailConfirmation'
    PASSWORD_RESET = 'passwordReset'


class Token(Base):
    __tablename__ = 'tokens'
    # the token value itself is the key; a duplicate insert is a hard failure
    token_key = Column(String(512), primary_key=True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), index=True, nullable=False)
    token_type = Column(
        Enum(TokenType, name='token_type', native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    expires_at = Column(DateTime, nullable=False)
    last_used_at = Column(DateTime, nullable=True)
    invalidated = Column(Boolean, nullable=False, default=False)
    session_id = Column(Integer, ForeignKey('session_logs.id', ondelete='CASCADE'), index=True, nullable=True)

    user = relationship('User', back_populates='tokens')
    session = relationship('SessionLog', back_populates='tokens')

    __table_args__ = (
        Index('ix_tokens_sweep', 'token_type', 'invalidated', 'expires_at'),
    )

    def is_usable(self, now) -> bool:
        return not self.invalidated and now < self.expires_at
