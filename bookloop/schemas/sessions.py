from datetime import datetime
from pydantic import BaseModel, Field


class RefreshOut(BaseModel):
    message: str = 'Tokens refreshed'
    access_token_expires_at: datetime = Field(serialization_alias='accessTokenExpiresAt')
    refresh_token_expires_at: datetime = Field(serialization_alias='refreshTokenExpiresAt')


class LogoutOut(BaseModel):
    message: str
    logout: bool = True
    sessions_closed: int = Field(serialization_alias='sessionsClosed')
    tokens_invalidated: int = Field(serialization_alias='tokensInvalidated')


class ValidSessionOut(BaseModel):
    message: str = 'Session is valid.'
    user_id: int = Field(serialization_alias='userId')
    username: str
    session_id: int = Field(serialization_alias='sessionId')
