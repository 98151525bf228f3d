from datetime import date

from sqlalchemy import and_, or_, select

from studenthub.models import Activity, Student, ACTIVITY_CATEGORIES, ACTIVITY_STATUSES
from studenthub.errors import field_error

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100

SORT_KEYS = {
    'createdAt': Activity.created_at,
    'title': Activity.title,
    'status': Activity.status,
    'startDate': Activity.start_date,
}


def clean(value):
    """Empty strings mean 'no filter'."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def clamp_pagination(page, limit):
    page = page if isinstance(page, int) and page >= 1 else DEFAULT_PAGE
    if not isinstance(limit, int):
        limit = DEFAULT_LIMIT
    limit = max(1, min(MAX_LIMIT, limit))
    return page, limit


def like_pattern(term):
    escaped = term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escaped}%'


def department_students(department):
    return select(Student.id).where(Student.department == department)


class ActivityQuery:
    """
    Role-scoped activity listing.

    The scope for the actor is applied first and user filters are ANDed on
    top of it, so no filter can widen what the actor may see.
    """

    def __init__(self, actor, category=None, status=None, student=None, department=None,
                 start_date=None, end_date=None, search=None, sort=None,
                 page=DEFAULT_PAGE, limit=DEFAULT_LIMIT):
        self.actor = actor
        self.category = clean(category)
        self.status = clean(status)
        self.student = clean(student)
        self.department = clean(department)
        self.start_date = clean(start_date)
        self.end_date = clean(end_date)
        self.search = clean(search)
        self.sort = clean(sort) or '-createdAt'
        self.page, self.limit = clamp_pagination(page, limit)
        self._validate()

    @classmethod
    def from_args(cls, actor, args):
        return cls(
            actor,
            category=args.get('category'),
            status=args.get('status'),
            student=args.get('student') or args.get('studentId'),
            department=args.get('department'),
            start_date=args.get('startDate'),
            end_date=args.get('endDate'),
            search=args.get('search'),
            sort=args.get('sort'),
            page=args.get('page', DEFAULT_PAGE, type=int),
            limit=args.get('limit', DEFAULT_LIMIT, type=int),
        )

    def _validate(self):
        if self.category and self.category not in ACTIVITY_CATEGORIES:
            raise field_error('category', 'Invalid category filter', self.category)
        if self.status and self.status not in ACTIVITY_STATUSES:
            raise field_error('status', 'Invalid status filter', self.status)
        if self.sort.lstrip('-') not in SORT_KEYS:
            raise field_error('sort', 'Invalid sort parameter', self.sort)
        if self.actor.role == 'student':
            self.student = None
        elif self.student is not None:
            try:
                self.student = int(self.student)
            except (TypeError, ValueError):
                raise field_error('student', 'Invalid student ID format', self.student)
        for name in ('start_date', 'end_date'):
            value = getattr(self, name)
            if value is None or not isinstance(value, str):
                continue
            try:
                setattr(self, name, date.fromisoformat(value[:10]))
            except ValueError:
                raise field_error('startDate' if name == 'start_date' else 'endDate', 'Invalid date format', value)

    def scope_clause(self):
        actor = self.actor
        if actor.role == 'student':
            return Activity.student_id == actor.id
        if actor.role == 'faculty':
            return or_(
                Activity.student_id.in_(department_students(actor.department)),
                Activity.approved_by_id == actor.id,
            )
        return None

    def filter_clauses(self):
        clauses = []
        if self.category:
            clauses.append(Activity.category == self.category)
        if self.status:
            clauses.append(Activity.status == self.status)
        # A student's own identity already pins the owner.
        if self.student is not None and self.actor.role != 'student':
            clauses.append(Activity.student_id == self.student)
        if self.department and self.actor.role in ('admin', 'faculty'):
            clauses.append(Activity.student_id.in_(department_students(self.department)))
        if self.start_date:
            clauses.append(Activity.start_date >= self.start_date)
        if self.end_date:
            clauses.append(Activity.start_date <= self.end_date)
        if self.search:
            pattern = like_pattern(self.search)
            clauses.append(or_(
                Activity.title.ilike(pattern, escape='\\'),
                Activity.description.ilike(pattern, escape='\\'),
                Activity.organizer.ilike(pattern, escape='\\'),
            ))
        return clauses

    def criteria(self):
        clauses = []
        scope = self.scope_clause()
        if scope is not None:
            clauses.append(scope)
        clauses.extend(self.filter_clauses())
        return and_(*clauses) if clauses else None

    def order_by(self):
        column = SORT_KEYS[self.sort.lstrip('-')]
        primary = column.desc() if self.sort.startswith('-') else column.asc()
        return [primary, Activity.id.desc()]

    def query(self):
        query = Activity.query
        criteria = self.criteria()
        if criteria is not None:
            query = query.filter(criteria)
        return query

    def paginate(self):
        # total, pages and the page items all come from the same filtered query
        return self.query().order_by(*self.order_by()).paginate(
            page=self.page, per_page=self.limit, error_out=False)


def pending_for(actor):
    query = Activity.query.filter(Activity.status == 'pending')
    if actor.role == 'faculty':
        query = query.filter(Activity.student_id.in_(department_students(actor.department)))
    return query.order_by(Activity.created_at.asc(), Activity.id.asc())


