from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from werkzeug.security import check_password_hash
from datetime import datetime
import secrets
import time

# Initialize SQLAlchemy
db = SQLAlchemy()

ROLES = ('student', 'faculty', 'admin')

ACTIVITY_CATEGORIES = (
    'academic', 'research', 'conference', 'workshop', 'certification',
    'internship', 'project', 'competition', 'volunteering',
    'extracurricular', 'leadership', 'publication', 'patent', 'award', 'other',
)
ACTIVITY_MODES = ('online', 'offline', 'hybrid')
DOCUMENT_TYPES = ('pdf', 'image', 'document')
IMPACT_LEVELS = ('low', 'medium', 'high')

PENDING = 'pending'
UNDER_REVIEW = 'under_review'  # reserved, no transition sets it
APPROVED = 'approved'
REJECTED = 'rejected'
ACTIVITY_STATUSES = (PENDING, UNDER_REVIEW, APPROVED, REJECTED)
# Leaves room for the 'Activity rejected: ' prefix in the 500-char comment
MAX_REJECTION_REASON = 480

REPORT_TYPES = (
    'student_portfolio', 'department_summary', 'accreditation_report',
    'activity_analysis', 'performance_report', 'compliance_report', 'custom_report',
)
REPORT_PURPOSES = ('NAAC', 'NIRF', 'AICTE', 'internal', 'external', 'research')
REPORT_GENERATING = 'generating'
REPORT_COMPLETED = 'completed'
REPORT_FAILED = 'failed'
REPORT_STATUSES = (REPORT_GENERATING, REPORT_COMPLETED, REPORT_FAILED)
ACCESS_LEVELS = ('private', 'faculty', 'public')
SHARE_PERMISSIONS = ('view', 'download', 'edit')


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    role = db.Column(db.String(20), nullable=False, index=True)

    first_name = db.Column(db.String(50), nullable=False)
    last_name = db.Column(db.String(50), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    bio = db.Column(db.String(500), nullable=True)

    # Students and faculty only
    department = db.Column(db.String(100), nullable=True, index=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {
        'polymorphic_on': role,
    }

    def __repr__(self):
        return f'<User {self.email}>'

    @property
    def full_name(self):
        return f'{self.first_name} {self.last_name}'

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def is_admin(self):
        return self.role == 'admin'

    def is_faculty(self):
        return self.role == 'faculty'

    def is_student(self):
        return self.role == 'student'

    def to_summary(self):
        return {
            'id': self.id,
            'firstName': self.first_name,
            'lastName': self.last_name,
            'fullName': self.full_name,
            'role': self.role,
            'department': self.department,
        }

    def to_dict(self):
        data = self.to_summary()
        data.update({
            'email': self.email,
            'phone': self.phone,
            'bio': self.bio,
            'isActive': self.is_active,
            'isVerified': self.is_verified,
            'lastLogin': self.last_login.isoformat() if self.last_login else None,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        })
        return data


class Student(User):
    year = db.Column(db.Integer, nullable=True)
    semester = db.Column(db.Integer, nullable=True)
    total_credits = db.Column(db.Float, default=0, nullable=True)
    cgpa = db.Column(db.Float, default=0, nullable=True)
    student_code = db.Column(db.String(32), unique=True, nullable=True, index=True)

    __mapper_args__ = {'polymorphic_identity': 'student'}

    def to_summary(self):
        data = super().to_summary()
        data.update({'studentId': self.student_code, 'year': self.year})
        return data

    def to_dict(self):
        data = super().to_dict()
        data.update({
            'semester': self.semester,
            'totalCredits': self.total_credits,
            'cgpa': self.cgpa,
        })
        return data


class Faculty(User):
    designation = db.Column(db.String(100), nullable=True)
    employee_id = db.Column(db.String(32), unique=True, nullable=True, index=True)

    __mapper_args__ = {'polymorphic_identity': 'faculty'}

    def to_summary(self):
        data = super().to_summary()
        data['designation'] = self.designation
        return data

    def to_dict(self):
        data = super().to_dict()
        data['employeeId'] = self.employee_id
        return data


class Admin(User):
    __mapper_args__ = {'polymorphic_identity': 'admin'}


USER_CLASSES = {'student': Student, 'faculty': Faculty, 'admin': Admin}


def generate_verification_code():
    return f'ACT{int(time.time() * 1000)}{secrets.token_hex(4).upper()}'


class Activity(db.Model):
    __tablename__ = 'activities'
    __table_args__ = (
        db.CheckConstraint('end_date >= start_date', name='ck_activity_dates'),
        db.CheckConstraint(
            "status != 'rejected' OR (rejection_reason IS NOT NULL AND rejection_reason != '')",
            name='ck_activity_rejection_reason',
        ),
        db.CheckConstraint(
            '(approved_by_id IS NULL) = (approval_date IS NULL)',
            name='ck_activity_approval_pair',
        ),
        db.CheckConstraint(
            "approved_by_id IS NULL OR status IN ('approved', 'rejected')",
            name='ck_activity_approval_status',
        ),
        db.Index('ix_activity_student_status', 'student_id', 'status'),
        db.Index('ix_activity_category_status', 'category', 'status'),
    )

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=False)
    category = db.Column(db.String(50), nullable=False)
    sub_category = db.Column(db.String(100), nullable=True)

    student_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)

    organizer = db.Column(db.String(200), nullable=False)
    location = db.Column(db.String(200), nullable=True)
    mode = db.Column(db.String(20), nullable=False, default='offline')

    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date, nullable=False)

    credits = db.Column(db.Float, nullable=False, default=0)
    grade = db.Column(db.String(10), nullable=True)
    score = db.Column(db.Float, nullable=True)

    skills_gained = db.Column(db.JSON, nullable=False, default=list)
    learning_outcomes = db.Column(db.String(500), nullable=True)
    tags = db.Column(db.JSON, nullable=False, default=list)
    impact = db.Column(db.String(10), nullable=False, default='medium')

    status = db.Column(db.String(20), nullable=False, default=PENDING, index=True)
    approved_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    approval_date = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.String(500), nullable=True)

    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_code = db.Column(db.String(64), unique=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    student = db.relationship('User', foreign_keys=[student_id], backref=db.backref('activities', lazy=True))
    approved_by = db.relationship('User', foreign_keys=[approved_by_id])
    documents = db.relationship('ActivityDocument', backref='activity', lazy=True,
                                cascade='all, delete-orphan', order_by='ActivityDocument.id')
    comments = db.relationship('ActivityComment', backref='activity', lazy=True,
                               cascade='all, delete-orphan',
                               order_by='ActivityComment.id')

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Minted once; update paths never touch it.
        self.verification_code = generate_verification_code()
        if self.status is None:
            self.status = PENDING

    def __repr__(self):
        return f'<Activity {self.id} - {self.title}>'

    @property
    def duration(self):
        """Inclusive day count; a same-day activity lasts 1 day."""
        if not self.start_date or not self.end_date:
            return None
        return (self.end_date - self.start_date).days + 1

    @property
    def duration_text(self):
        return '1 day' if self.duration == 1 else f'{self.duration} days'

    @property
    def owner_department(self):
        return self.student.department if self.student else None

    def to_dict(self, include_comments=False):
        data = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'category': self.category,
            'subCategory': self.sub_category,
            'student': self.student.to_summary() if self.student else None,
            'organizer': self.organizer,
            'location': self.location,
            'mode': self.mode,
            'startDate': self.start_date.isoformat(),
            'endDate': self.end_date.isoformat(),
            'duration': self.duration,
            'credits': self.credits,
            'grade': self.grade,
            'score': self.score,
            'skillsGained': list(self.skills_gained or []),
            'learningOutcomes': self.learning_outcomes,
            'tags': list(self.tags or []),
            'impact': self.impact,
            'status': self.status,
            'approvedBy': self.approved_by.to_summary() if self.approved_by else None,
            'approvalDate': self.approval_date.isoformat() if self.approval_date else None,
            'rejectionReason': self.rejection_reason,
            'isPublic': self.is_public,
            'isVerified': self.is_verified,
            'verificationCode': self.verification_code,
            'documents': [d.to_dict() for d in self.documents],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_comments:
            data['comments'] = [c.to_dict() for c in self.comments]
        return data


class ActivityDocument(db.Model):
    __tablename__ = 'activity_documents'

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(db.Integer, db.ForeignKey('activities.id', ondelete='CASCADE'), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    url = db.Column(db.String(500), nullable=False)
    public_id = db.Column(db.String(255), nullable=True)
    file_type = db.Column(db.String(20), nullable=False)
    upload_date = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            'name': self.name,
            'url': self.url,
            'publicId': self.public_id,
            'fileType': self.file_type,
            'uploadDate': self.upload_date.isoformat() if self.upload_date else None,
        }


class ActivityComment(db.Model):
    __tablename__ = 'activity_comments'

    id = db.Column(db.Integer, primary_key=True)
    activity_id = db.Column(db.Integer, db.ForeignKey('activities.id', ondelete='CASCADE'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    message = db.Column(db.String(500), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    user = db.relationship('User')

    def to_dict(self):
        return {
            'id': self.id,
            'user': self.user.to_summary() if self.user else None,
            'message': self.message,
            'createdAt': self.created_at.isoformat(),
        }


report_students = db.Table(
    'report_students',
    db.Column('report_id', db.Integer, db.ForeignKey('reports.id', ondelete='CASCADE'), primary_key=True),
    db.Column('user_id', db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
)


class Report(db.Model):
    __tablename__ = 'reports'

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(1000), nullable=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    purpose = db.Column(db.String(20), nullable=False, default='internal')
    template = db.Column(db.String(40), nullable=True)

    # Scope
    departments = db.Column(db.JSON, nullable=False, default=list)
    academic_year = db.Column(db.String(9), nullable=True)
    range_start = db.Column(db.Date, nullable=True)
    range_end = db.Column(db.Date, nullable=True)

    generated_by_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False, default=REPORT_GENERATING, index=True)

    file_name = db.Column(db.String(255), nullable=True)
    file_original_name = db.Column(db.String(255), nullable=True)
    file_url = db.Column(db.String(500), nullable=True)
    file_type = db.Column(db.String(20), nullable=True)
    file_size = db.Column(db.Integer, nullable=True)

    statistics = db.Column(db.JSON, nullable=False, default=dict)
    error = db.Column(db.Text, nullable=True)

    access_level = db.Column(db.String(20), nullable=False, default='private')
    is_public = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    completed_at = db.Column(db.DateTime, nullable=True)

    generated_by = db.relationship('User', foreign_keys=[generated_by_id])
    students = db.relationship('User', secondary=report_students, lazy='subquery')
    shares = db.relationship('ReportShare', backref='report', lazy=True, cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Report {self.id} {self.type} {self.status}>'

    def has_access(self, user, action='view'):
        """Creator and admins see everything; everyone else needs scope, visibility or a grant."""
        if user.role == 'admin' or self.generated_by_id == user.id:
            return True

        read_only = action in ('view', 'download')
        if read_only:
            if self.is_public or self.access_level == 'public':
                return True
            if self.access_level == 'faculty' and user.role == 'faculty':
                return True
            if any(s.id == user.id for s in self.students):
                return True
            if user.role == 'faculty' and user.department and user.department in (self.departments or []):
                return True

        for share in self.shares:
            if share.user_id != user.id:
                continue
            if share.permission == 'edit':
                return True
            if share.permission == 'download' and read_only:
                return True
            if share.permission == 'view' and action == 'view':
                return True
        return False

    def share_with(self, user_id, permission):
        existing = next((s for s in self.shares if s.user_id == user_id), None)
        if existing:
            existing.permission = permission
        else:
            self.shares.append(ReportShare(user_id=user_id, permission=permission))

    def mark_completed(self, file_info, statistics):
        self.status = REPORT_COMPLETED
        self.file_name = file_info['filename']
        self.file_original_name = file_info.get('original_name', file_info['filename'])
        self.file_url = file_info['url']
        self.file_type = file_info.get('file_type')
        self.file_size = file_info['size']
        self.statistics = statistics
        self.error = None
        self.completed_at = datetime.utcnow()

    def mark_failed(self, error):
        self.status = REPORT_FAILED
        self.error = error
        self.completed_at = datetime.utcnow()

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'type': self.type,
            'purpose': self.purpose,
            'template': self.template,
            'scope': {
                'students': [s.id for s in self.students],
                'departments': list(self.departments or []),
                'academicYear': self.academic_year,
                'dateRange': {
                    'startDate': self.range_start.isoformat() if self.range_start else None,
                    'endDate': self.range_end.isoformat() if self.range_end else None,
                },
            },
            'generatedBy': self.generated_by.to_summary() if self.generated_by else None,
            'status': self.status,
            'file': {
                'filename': self.file_name,
                'originalName': self.file_original_name,
                'url': self.file_url,
                'fileType': self.file_type,
                'size': self.file_size,
            } if self.file_name else None,
            'statistics': dict(self.statistics or {}),
            'error': self.error,
            'accessLevel': self.access_level,
            'isPublic': self.is_public,
            'sharedWith': [{'user': s.user_id, 'permission': s.permission} for s in self.shares],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'completedAt': self.completed_at.isoformat() if self.completed_at else None,
        }


class ReportShare(db.Model):
    __tablename__ = 'report_shares'
    __table_args__ = (db.UniqueConstraint('report_id', 'user_id', name='uq_report_share_user'),)

    id = db.Column(db.Integer, primary_key=True)
    report_id = db.Column(db.Integer, db.ForeignKey('reports.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    permission = db.Column(db.String(20), nullable=False, default='view')
    shared_at = db.Column(db.DateTime, default=datetime.utcnow)
