from datetime import date, datetime
from pydantic import BaseModel, Field
from typing import List, Optional

from ..models.users import AccountStatus


class SuspensionIn(BaseModel):
    suspension_date: Optional[date] = Field(None, alias='suspensionDate')

    class Config:
        populate_by_name = True


class SuspensionOut(BaseModel):
    message: str
    status: AccountStatus
    deletion_schedule_date: Optional[date] = Field(None, serialization_alias='deletionScheduleDate')


class DeletionCandidateOut(BaseModel):
    id: int
    username: str
    profile_image: Optional[str] = Field(None, serialization_alias='profileImage')
    deletion_schedule_date: date = Field(serialization_alias='deletionScheduleDate')
    registration_date: Optional[datetime] = Field(None, serialization_alias='registrationDate')


class SuspendedUserOut(BaseModel):
    id: int
    username: str
    profile_image: Optional[str] = Field(None, serialization_alias='profileImage')
    is_active_status: AccountStatus = Field(serialization_alias='isActiveStatus')
    deletion_schedule_date: Optional[date] = Field(None, serialization_alias='deletionScheduleDate')
    registration_date: Optional[datetime] = Field(None, serialization_alias='registrationDate')


class SuspendedUsersPage(BaseModel):
    data: List[SuspendedUserOut]
    current_page: int = Field(serialization_alias='currentPage')
    total_pages: int = Field(serialization_alias='totalPages')
