"""
Entity models for UniLink.

Every row read from the remote store is validated into one of these models.
Optional columns may come back as NULL; ``clean_row`` drops them so that the
model defaults apply instead.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_row(row: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``row`` without NULL columns."""
    return {k: v for k, v in (row or {}).items() if v is not None}


class AccountType(str, Enum):
    STUDENT = "student"
    ORGANIZATION = "organization"


class JobType(str, Enum):
    INTERNSHIP = "Internship"
    SIWES = "SIWES"
    VOLUNTEER = "Volunteer"
    ENTRY_LEVEL = "Entry Level"


class ApplicationStatus(str, Enum):
    PENDING = "pending"
    REVIEWED = "reviewed"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ConnectionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"


class NotificationType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    CONNECT = "connect"
    MESSAGE = "message"
    SYSTEM = "system"


class Entity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True, use_enum_values=True)


# ============================================================================
# PROFILES
# ============================================================================

class ProfileBase(Entity):
    id: str
    name: str = ""
    avatar_url: str = ""
    is_verified: bool = False
    bio: str = ""
    email: Optional[str] = None


class StudentProfile(ProfileBase):
    account_type: Literal["student"] = "student"
    university: Optional[str] = None
    department: Optional[str] = None
    level: str = "Student"
    courses: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    badges: List[str] = Field(default_factory=list)


class OrganizationProfile(ProfileBase):
    account_type: Literal["organization"] = "organization"
    industry: Optional[str] = None
    website: Optional[str] = None
    location: Optional[str] = None
    size: Optional[str] = None
    skills: List[str] = Field(default_factory=list)


Profile = Annotated[Union[StudentProfile, OrganizationProfile], Field(discriminator="account_type")]

_profile_adapter = TypeAdapter(Profile)


def _profile_input(row: Dict[str, Any]) -> Dict[str, Any]:
    data = clean_row(row)
    data.setdefault("account_type", AccountType.STUDENT.value)
    return data


def parse_profile(row: Dict[str, Any]) -> Union[StudentProfile, OrganizationProfile]:
    """Validate a ``profiles`` row into the matching profile variant."""
    return _profile_adapter.validate_python(_profile_input(row))


def is_organization(profile: Optional[ProfileBase]) -> bool:
    return isinstance(profile, OrganizationProfile)


class ActorSnapshot(Entity):
    """Name and avatar of whoever triggered a notification, frozen at event time."""

    name: str = "A user"
    avatar_url: str = ""

    @classmethod
    def of(cls, profile: Optional[ProfileBase]) -> "ActorSnapshot":
        if profile is None:
            return cls()
        return cls(name=profile.name or "A user", avatar_url=profile.avatar_url or "")


# ============================================================================
# FEED
# ============================================================================

class Post(Entity):
    id: str
    user_id: str
    content: str = ""
    image_url: Optional[str] = None
    project_link: Optional[str] = None
    likes: int = Field(0, ge=0)
    comments_count: int = Field(0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    tag: Optional[str] = None
    author: Optional[Profile] = None
    user_has_liked: bool = False

    @field_validator("author", mode="before")
    @classmethod
    def _author_variant(cls, value):
        if isinstance(value, dict):
            return _profile_input(value)
        return value


class Comment(Entity):
    id: str
    post_id: str
    user_id: str
    content: str
    created_at: datetime = Field(default_factory=utcnow)
    author: Optional[Profile] = None

    @field_validator("author", mode="before")
    @classmethod
    def _author_variant(cls, value):
        if isinstance(value, dict):
            return _profile_input(value)
        return value


# ============================================================================
# JOBS
# ============================================================================

class Job(Entity):
    id: str
    owner_id: str
    title: str
    company: str = ""
    location: str = ""
    type: JobType = JobType.INTERNSHIP
    is_remote: bool = Field(False, alias="isRemote")
    is_paid: bool = Field(False, alias="isPaid")
    verified: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    applicants_count: int = Field(0, ge=0)
    has_applied: bool = False


class Application(Entity):
    id: str
    job_id: str
    student_id: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    student: Optional[Profile] = None

    @field_validator("student", mode="before")
    @classmethod
    def _student_variant(cls, value):
        if isinstance(value, dict):
            return _profile_input(value)
        return value


# ============================================================================
# NETWORK, MESSAGES, NOTIFICATIONS
# ============================================================================

class Connection(Entity):
    id: str
    requester_id: str
    recipient_id: str
    status: ConnectionStatus = ConnectionStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)


class Message(Entity):
    id: str
    conversation_id: str
    sender_id: str
    content: str
    created_at: datetime = Field(default_factory=utcnow)


class Notification(Entity):
    id: str
    user_id: str
    type: NotificationType
    content: str
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    related_id: Optional[str] = None
    actor_data: Optional[ActorSnapshot] = None


def parse(model, row: Dict[str, Any]):
    """Validate a store row into ``model`` after dropping NULL columns."""
    return model.model_validate(clean_row(row))
