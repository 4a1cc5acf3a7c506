import enum

from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Text, Enum, CheckConstraint, func
from sqlalchemy.orm import relationship
from . import Base


class AccountStatus(str, enum.Enum):
    ACTIVE = 'active'
    SUSPENDED = 'suspended'
    DEACTIVATED = 'deactivated'
    TO_BE_DELETED = 'to_be_deleted'


# statuses that carry a deletion_schedule_date
SCHEDULED_STATUSES = (AccountStatus.SUSPENDED, AccountStatus.TO_BE_DELETED)


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(150), unique=True, index=True, nullable=False)
    name = Column(String(150), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    birth_date = Column(Date, nullable=True)
    profile_image = Column(String(1000), nullable=True)
    about = Column(Text, nullable=True)
    registration_date = Column(DateTime, server_default=func.now())

    is_active_status = Column(
        Enum(AccountStatus, name='account_status', native_enum=False, length=20,
             values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=AccountStatus.ACTIVE,
    )
    deletion_schedule_date = Column(Date, nullable=True)

    is_admin = Column(Boolean, nullable=False, default=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    holiday_mode = Column(Boolean, nullable=False, default=False)

    # maintained by follow/unfollow in crud, never set from request bodies
    follower_count = Column(Integer, nullable=False, default=0)
    following_count = Column(Integer, nullable=False, default=0)

    sessions = relationship('SessionLog', back_populates='user', cascade='all, delete-orphan', passive_deletes=True)
    tokens = relationship('Token', back_populates='user', cascade='all, delete-orphan', passive_deletes=True)

    __table_args__ = (
        CheckConstraint(
            "(is_active_status IN ('suspended', 'to_be_deleted') AND deletion_schedule_date IS NOT NULL)"
            " OR (is_active_status IN ('active', 'deactivated') AND deletion_schedule_date IS NULL)",
            name='ck_users_deletion_schedule',
        ),
    )
