from datetime import date, datetime
from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional

from ..models.users import AccountStatus


class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=150)
    name: Optional[str] = None
    email: EmailStr
    password: str = Field(min_length=8, max_length=72)
    birth_date: date = Field(alias='birthDate')
    accept_terms: bool = Field(alias='acceptTAndC')

    @field_validator('accept_terms')
    @classmethod
    def terms_must_be_accepted(cls, value):
        if not value:
            raise ValueError('Terms must be accepted')
        return value

    class Config:
        populate_by_name = True


class LoginIn(BaseModel):
    username_or_email: str = Field(alias='usernameOrEmail', min_length=1)
    password: str = Field(min_length=1)

    class Config:
        populate_by_name = True


class UserOut(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    email: EmailStr
    profile_image: Optional[str] = Field(None, serialization_alias='profileImage')
    is_verified: bool = Field(serialization_alias='isVerified')
    is_active_status: AccountStatus = Field(serialization_alias='isActiveStatus')
    holiday_mode: bool = Field(serialization_alias='holidayMode')
    follower_count: int = Field(serialization_alias='followerCount')
    following_count: int = Field(serialization_alias='followingCount')

    class Config:
        from_attributes = True


class AccountSettingsIn(BaseModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = Field(None, min_length=3, max_length=150)
    name: Optional[str] = None
    birth_date: Optional[date] = Field(None, alias='birthdayDate')
    holiday_mode: Optional[bool] = Field(None, alias='holidayMode')
    current_password: str = Field(alias='currentPassword', min_length=1)
    new_password: str = Field(alias='newPassword', min_length=8, max_length=72)
    confirm_password: str = Field(alias='confirmPassword', min_length=1)

    class Config:
        populate_by_name = True


class PasswordResetIn(BaseModel):
    email: EmailStr


class PasswordResetConfirmIn(BaseModel):
    token: str = Field(min_length=1)
    new_password: str = Field(alias='newPassword', min_length=8, max_length=72)

    class Config:
        populate_by_name = True


class DeletionScheduleOut(BaseModel):
    status: AccountStatus
    deletion_schedule_date: Optional[date] = Field(None, serialization_alias='deletionScheduleDate')


class ActionOkOut(BaseModel):
    ok: bool = True
    message: Optional[str] = None


class SessionUserOut(BaseModel):
    id: int
    username: str
    email: Optional[EmailStr] = None


class LoginOut(BaseModel):
    message: str
    user: SessionUserOut
    access_token_expires_at: datetime = Field(serialization_alias='accessTokenExpiresAt')


class PublicUserOut(BaseModel):
    id: int
    username: str
    name: Optional[str] = None
    profile_image: Optional[str] = Field(None, serialization_alias='profileImage')
    holiday_mode: bool = Field(serialization_alias='holidayMode')
    follower_count: int = Field(serialization_alias='followerCount')
    following_count: int = Field(serialization_alias='followingCount')

    class Config:
        from_attributes = True
