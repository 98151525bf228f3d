"""
Request schemas for the JSON API.

Each model validates one request body. Field names follow the camelCase the
dashboard sends; services read the snake_case attributes.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from studenthub.models import (
    ACTIVITY_CATEGORIES, ACTIVITY_MODES, DOCUMENT_TYPES, IMPACT_LEVELS, MAX_REJECTION_REASON, REPORT_TYPES,
)

Category = Literal[ACTIVITY_CATEGORIES]
Mode = Literal[ACTIVITY_MODES]
Impact = Literal[IMPACT_LEVELS]


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra='ignore')


def _blank_to_none(value):
    if isinstance(value, str) and value.strip() == '':
        return None
    return value


# ---------- Auth / Users ----------
class LoginRequest(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RegisterRequest(CamelModel):
    first_name: str = Field(..., alias='firstName', min_length=2, max_length=50)
    last_name: str = Field(..., alias='lastName', min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Literal['student', 'faculty', 'admin'] = 'student'
    department: Optional[str] = Field(None, max_length=100)
    year: Optional[int] = Field(None, ge=1, le=4)
    semester: Optional[int] = Field(None, ge=1, le=8)
    designation: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, pattern=r'^\+?[\d\s\-()]+$')

    @field_validator('department', 'designation', 'phone', mode='before')
    @classmethod
    def blank_to_none(cls, value):
        return _blank_to_none(value)

    @model_validator(mode='after')
    def check_role_fields(self):
        if self.role in ('student', 'faculty') and not self.department:
            raise ValueError('Department is required for students and faculty')
        if self.role == 'student' and (self.year is None or self.semester is None):
            raise ValueError('Year and semester are required for students')
        if self.role == 'faculty' and not self.designation:
            raise ValueError('Designation is required for faculty')
        return self


class ProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(None, alias='firstName', min_length=2, max_length=50)
    last_name: Optional[str] = Field(None, alias='lastName', min_length=2, max_length=50)
    phone: Optional[str] = Field(None, pattern=r'^\+?[\d\s\-()]+$')
    bio: Optional[str] = Field(None, max_length=500)
    year: Optional[int] = Field(None, ge=1, le=4)
    semester: Optional[int] = Field(None, ge=1, le=8)
    designation: Optional[str] = Field(None, max_length=100)


class AdminUserUpdate(ProfileUpdate):
    email: Optional[EmailStr] = None
    role: Optional[Literal['student', 'faculty', 'admin']] = None
    department: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = Field(None, alias='isActive')
    is_verified: Optional[bool] = Field(None, alias='isVerified')
    cgpa: Optional[float] = Field(None, ge=0, le=10)
    total_credits: Optional[float] = Field(None, alias='totalCredits', ge=0)


class PasswordChange(CamelModel):
    current_password: str = Field(..., alias='currentPassword')
    new_password: str = Field(..., alias='newPassword', min_length=6)


# ---------- Activities ----------
class DocumentIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    url: str = Field(..., min_length=1, max_length=500)
    public_id: Optional[str] = Field(None, alias='publicId')
    file_type: Literal[DOCUMENT_TYPES] = Field(..., alias='fileType')


class ActivityBase(CamelModel):
    sub_category: Optional[str] = Field(None, alias='subCategory', max_length=100)
    location: Optional[str] = Field(None, max_length=200)
    grade: Optional[str] = Field(None, max_length=10)
    score: Optional[float] = Field(None, ge=0, le=100)
    learning_outcomes: Optional[str] = Field(None, alias='learningOutcomes', max_length=500)
    documents: Optional[List[DocumentIn]] = None
    is_public: Optional[bool] = Field(None, alias='isPublic')

    @field_validator('skills_gained', 'tags', mode='before', check_fields=False)
    @classmethod
    def strip_list(cls, value):
        if value is None:
            return value
        if isinstance(value, str):
            value = value.split(',')
        return [str(v).strip() for v in value if str(v).strip()]

    @field_validator('tags', check_fields=False)
    @classmethod
    def lowercase_tags(cls, value):
        return [v.lower() for v in value] if value is not None else value

    @model_validator(mode='after')
    def check_dates(self):
        start = getattr(self, 'start_date', None)
        end = getattr(self, 'end_date', None)
        if start and end and end < start:
            raise ValueError('End date must be after or equal to start date')
        return self


class ActivityCreate(ActivityBase):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=1000)
    category: Category
    organizer: str = Field(..., min_length=1, max_length=200)
    mode: Mode = 'offline'
    start_date: date = Field(..., alias='startDate')
    end_date: date = Field(..., alias='endDate')
    credits: float = Field(0, ge=0, le=10)
    skills_gained: List[str] = Field(default_factory=list, alias='skillsGained')
    tags: List[str] = Field(default_factory=list)
    impact: Impact = 'medium'


class ActivityUpdate(ActivityBase):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    category: Optional[Category] = None
    organizer: Optional[str] = Field(None, min_length=1, max_length=200)
    mode: Optional[Mode] = None
    start_date: Optional[date] = Field(None, alias='startDate')
    end_date: Optional[date] = Field(None, alias='endDate')
    credits: Optional[float] = Field(None, ge=0, le=10)
    skills_gained: Optional[List[str]] = Field(None, alias='skillsGained')
    tags: Optional[List[str]] = None
    impact: Optional[Impact] = None


class ApprovalDecision(CamelModel):
    status: Literal['approved', 'rejected']
    comments: Optional[str] = Field(None, max_length=500)
    rejection_reason: Optional[str] = Field(None, alias='rejectionReason', max_length=MAX_REJECTION_REASON)

    @model_validator(mode='after')
    def require_reason(self):
        if self.status == 'rejected' and not self.rejection_reason:
            raise ValueError('Rejection reason is required when rejecting an activity')
        return self


class CommentIn(CamelModel):
    message: str = Field(..., min_length=1, max_length=500)


class VisibilityIn(CamelModel):
    is_public: bool = Field(..., alias='isPublic')


# ---------- Reports ----------
class PortfolioRequest(CamelModel):
    include_all: bool = Field(False, alias='includeAll')
    template: Literal['standard', 'compact'] = 'standard'


class DateRange(CamelModel):
    start_date: date = Field(..., alias='startDate')
    end_date: date = Field(..., alias='endDate')

    @model_validator(mode='after')
    def check_order(self):
        if self.end_date < self.start_date:
            raise ValueError('End date must be after start date')
        return self


class ReportScope(CamelModel):
    students: List[int] = Field(default_factory=list)
    departments: List[str] = Field(default_factory=list)
    academic_year: str = Field(..., alias='academicYear', pattern=r'^\d{4}-\d{4}$')
    date_range: DateRange = Field(..., alias='dateRange')


class ReportCreate(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    type: Literal[REPORT_TYPES]
    purpose: Literal['NAAC', 'NIRF', 'AICTE', 'internal', 'external', 'research']
    scope: ReportScope
    template: Optional[str] = Field(None, max_length=40)
    access_level: Literal['private', 'faculty', 'public'] = Field('private', alias='accessLevel')
    is_public: bool = Field(False, alias='isPublic')

    @field_validator('type')
    @classmethod
    def not_portfolio(cls, value):
        if value == 'student_portfolio':
            raise ValueError('Portfolios are generated through /reports/portfolio/<studentId>')
        return value


class ShareRequest(CamelModel):
    user_id: int = Field(..., alias='userId')
    permissions: Literal['view', 'download', 'edit'] = 'view'
