import io
import json
import logging
from datetime import date, datetime

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from sqlalchemy import String, case, cast, func, or_, select

from studenthub.models import (
    db, Activity, Report, Student, User, APPROVED, REPORT_GENERATING,
)
from studenthub.errors import NotFound, PermissionDenied, ReportGenerationError, field_error
from studenthub.services.activity_query import clamp_pagination, like_pattern
from studenthub import storage

logger = logging.getLogger(__name__)

XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def academic_year_bounds(academic_year):
    start_year, end_year = academic_year.split('-')
    return date(int(start_year), 1, 1), date(int(end_year), 12, 31)


class ReportService:
    @staticmethod
    def create_custom(actor, payload):
        scope = payload.scope
        departments = [d for d in scope.departments if d]

        # Faculty reports never reach outside their own department
        if actor.role == 'faculty':
            if not departments:
                departments = [actor.department]
            elif any(d != actor.department for d in departments):
                raise PermissionDenied('Faculty can only create reports for their department')

        students = []
        if scope.students:
            students = Student.query.filter(Student.id.in_(scope.students)).all()
            missing = set(scope.students) - {s.id for s in students}
            if missing:
                raise field_error('scope.students', 'Unknown student in report scope', sorted(missing))
            if actor.role == 'faculty' and any(s.department != actor.department for s in students):
                raise PermissionDenied('Faculty can only create reports for their department')

        report = Report(
            title=payload.title,
            description=payload.description,
            type=payload.type,
            purpose=payload.purpose,
            template=payload.template,
            departments=departments,
            academic_year=scope.academic_year,
            range_start=scope.date_range.start_date,
            range_end=scope.date_range.end_date,
            generated_by_id=actor.id,
            status=REPORT_GENERATING,
            access_level=payload.access_level,
            is_public=payload.is_public,
        )
        report.students = students
        db.session.add(report)
        db.session.commit()
        logger.info("Report %s (%s) queued by user %s", report.id, report.type, actor.id)
        return report

    @staticmethod
    def visible_clause(actor):
        if actor.role == 'student':
            return or_(
                Report.generated_by_id == actor.id,
                Report.students.any(User.id == actor.id),
                Report.is_public.is_(True),
            )
        if actor.role == 'faculty':
            clauses = [
                Report.generated_by_id == actor.id,
                Report.access_level.in_(('faculty', 'public')),
                Report.is_public.is_(True),
            ]
            if actor.department:
                # departments is a JSON list; match the quoted name in its text form
                pattern = like_pattern(json.dumps(actor.department))
                clauses.append(cast(Report.departments, String).like(pattern, escape='\\'))
            return or_(*clauses)
        return None

    @staticmethod
    def list_reports(actor, report_type=None, purpose=None, status='completed', page=1, limit=10):
        page, limit = clamp_pagination(page, limit)
        query = Report.query
        clause = ReportService.visible_clause(actor)
        if clause is not None:
            query = query.filter(clause)
        if report_type:
            query = query.filter(Report.type == report_type)
        if purpose:
            query = query.filter(Report.purpose == purpose)
        if status:
            query = query.filter(Report.status == status)
        return query.order_by(Report.created_at.desc(), Report.id.desc()).paginate(
            page=page, per_page=limit, error_out=False)

    @staticmethod
    def get_accessible(actor, report_id, action='view'):
        report = db.session.get(Report, report_id)
        if report is None or not report.has_access(actor, 'view'):
            raise NotFound('Report not found')
        if action != 'view' and not report.has_access(actor, action):
            raise PermissionDenied(f'Not authorized to {action} this report')
        return report

    @staticmethod
    def delete(actor, report_id):
        report = ReportService.get_accessible(actor, report_id)
        if actor.role != 'admin' and report.generated_by_id != actor.id:
            raise PermissionDenied('Not authorized to delete this report')
        file_name = report.file_name
        db.session.delete(report)
        db.session.commit()
        storage.delete_artifact(file_name)
        logger.info("User %s deleted report %s", actor.id, report_id)

    @staticmethod
    def share(actor, report_id, user_id, permission):
        report = ReportService.get_accessible(actor, report_id)
        if not report.has_access(actor, 'edit'):
            raise PermissionDenied('Not authorized to share this report')
        target = db.session.get(User, user_id)
        if target is None or not target.is_active:
            raise NotFound('Target user not found')
        report.share_with(target.id, permission)
        db.session.commit()
        logger.info("Report %s shared with user %s (%s)", report.id, target.id, permission)
        return report

    @staticmethod
    def download_path(actor, report_id):
        report = ReportService.get_accessible(actor, report_id, 'download')
        if not report.file_name:
            raise NotFound('Report file not available')
        path = storage.resolve(storage.reports_folder(), report.file_name)
        return report, path

    @staticmethod
    def department_analytics(actor, department=None, academic_year=None):
        department = department or actor.department
        if actor.role == 'faculty' and department != actor.department:
            raise PermissionDenied('Faculty can only view analytics for their department')
        if not department:
            raise field_error('department', 'Department is required')

        student_ids = select(Student.id).where(Student.department == department, Student.is_active.is_(True))
        total_students = db.session.scalar(select(func.count()).select_from(student_ids.subquery()))

        filters = [Activity.student_id.in_(student_ids)]
        if academic_year:
            try:
                start, end = academic_year_bounds(academic_year)
            except ValueError:
                raise field_error('academicYear', 'Academic year must be in YYYY-YYYY format', academic_year)
            filters.append(Activity.start_date.between(start, end))

        by_category = db.session.query(
            Activity.category,
            func.count(Activity.id),
            func.sum(case((Activity.status == APPROVED, 1), else_=0)),
            func.coalesce(func.sum(Activity.credits), 0),
            func.avg(Activity.score),
        ).filter(*filters).group_by(Activity.category).all()

        by_student = db.session.query(
            Student,
            func.count(Activity.id),
            func.coalesce(func.sum(Activity.credits), 0),
            func.avg(Activity.score),
        ).join(Activity, Activity.student_id == Student.id).filter(
            Activity.status == APPROVED, *filters
        ).group_by(Student.id).order_by(func.sum(Activity.credits).desc()).all()

        return {
            'department': department,
            'academicYear': academic_year or 'All Years',
            'totalStudents': total_students,
            'activitiesAnalytics': [{
                'category': category,
                'totalActivities': total,
                'approvedActivities': int(approved or 0),
                'totalCredits': float(credits),
                'averageScore': round(float(avg), 2) if avg is not None else None,
            } for category, total, approved, credits, avg in by_category],
            'studentPerformance': [{
                'id': student.id,
                'studentId': student.student_code,
                'name': student.full_name,
                'year': student.year,
                'totalActivities': total,
                'totalCredits': float(credits),
                'averageScore': round(float(avg), 2) if avg is not None else None,
            } for student, total, credits, avg in by_student],
            'generatedAt': datetime.utcnow().isoformat(),
        }


class ReportBuilder:
    """
    Builds the Excel workbook for a custom report.

    Each report type has a `_build_<type>` method that writes sheets and
    returns the statistics stored on the Report.
    """

    def __init__(self, min_compliance_credits=20):
        self.min_compliance_credits = min_compliance_credits

    def scope_students(self, report):
        if report.students:
            return list(report.students)
        query = Student.query.filter(Student.is_active.is_(True))
        if report.departments:
            query = query.filter(Student.department.in_(report.departments))
        return query.order_by(Student.department, Student.last_name, Student.first_name).all()

    def scope_activities(self, report, students):
        if not students:
            return []
        query = Activity.query.filter(Activity.student_id.in_([s.id for s in students]))
        if report.range_start:
            query = query.filter(Activity.start_date >= report.range_start)
        if report.range_end:
            query = query.filter(Activity.start_date <= report.range_end)
        return query.order_by(Activity.start_date, Activity.id).all()

    @staticmethod
    def activity_frame(activities):
        rows = [{
            'Verification Code': a.verification_code,
            'Student ID': a.student.student_code,
            'Student Name': a.student.full_name,
            'Department': a.student.department,
            'Title': a.title,
            'Category': a.category,
            'Organizer': a.organizer,
            'Mode': a.mode,
            'Start Date': a.start_date.isoformat(),
            'End Date': a.end_date.isoformat(),
            'Duration (days)': a.duration,
            'Credits': a.credits,
            'Score': a.score,
            'Status': a.status,
            'Approved By': a.approved_by.full_name if a.approved_by else '',
            'Approval Date': a.approval_date.strftime('%Y-%m-%d') if a.approval_date else '',
            'Public': 'Yes' if a.is_public else 'No',
        } for a in activities]
        return pd.DataFrame(rows, columns=[
            'Verification Code', 'Student ID', 'Student Name', 'Department', 'Title', 'Category',
            'Organizer', 'Mode', 'Start Date', 'End Date', 'Duration (days)', 'Credits', 'Score',
            'Status', 'Approved By', 'Approval Date', 'Public',
        ])

    @staticmethod
    def _format_excel_sheet(writer, df, sheet_name):
        """Bold header and approximate column widths."""
        worksheet = writer.sheets[sheet_name]
        for idx, col in enumerate(df.columns):
            worksheet.cell(row=1, column=idx + 1).font = Font(bold=True)
            col_data = df[col].astype(str)
            max_len = col_data.map(len).max() if not col_data.empty else 0
            width = max(max_len, len(str(col))) + 2
            worksheet.column_dimensions[get_column_letter(idx + 1)].width = min(width, 50)

    def _write(self, writer, df, sheet_name):
        df.to_excel(writer, sheet_name=sheet_name, index=False)
        self._format_excel_sheet(writer, df, sheet_name)

    def _cover(self, writer, report, students, activities):
        cover = pd.DataFrame([{
            'Title': report.title,
            'Type': report.type,
            'Purpose': report.purpose,
            'Academic Year': report.academic_year or '',
            'Period': f'{report.range_start or ""} to {report.range_end or ""}',
            'Departments': ', '.join(report.departments or []) or 'All',
            'Students': len(students),
            'Activities': len(activities),
            'Generated By': report.generated_by.full_name if report.generated_by else '',
            'Generated On': datetime.utcnow().strftime('%Y-%m-%d %H:%M'),
        }])
        self._write(writer, cover, 'Report_Info')

    def build(self, report):
        builder = getattr(self, f'_build_{report.type}', None)
        if builder is None:
            raise ReportGenerationError(f'Unsupported report type: {report.type}')

        students = self.scope_students(report)
        activities = self.scope_activities(report, students)

        output = io.BytesIO()
        writer = pd.ExcelWriter(output, engine='openpyxl')
        self._cover(writer, report, students, activities)
        extra = builder(writer, report, students, activities)
        writer.close()
        output.seek(0)

        statistics = {
            'totalStudents': len(students),
            'totalActivities': len(activities),
            'approvedActivities': sum(1 for a in activities if a.status == APPROVED),
            'totalCredits': float(sum(a.credits or 0 for a in activities if a.status == APPROVED)),
        }
        statistics.update(extra or {})

        saved = storage.save_bytes(output.getvalue(), f'{report.type}_{report.id}.xlsx', 'xlsx')
        saved['url'] = f'/api/reports/{report.id}/download'
        return saved, statistics

    # --- per-type sheets ---

    def _build_department_summary(self, writer, report, students, activities):
        df = self.activity_frame(activities)
        departments = sorted({s.department for s in students if s.department})
        rows = []
        for dept in departments:
            dept_df = df[df['Department'] == dept]
            approved = dept_df[dept_df['Status'] == APPROVED]
            rows.append({
                'Department': dept,
                'Students': sum(1 for s in students if s.department == dept),
                'Participating Students': dept_df['Student ID'].nunique(),
                'Activities': len(dept_df),
                'Approved': len(approved),
                'Approved Credits': float(approved['Credits'].sum()),
                'Average Score': round(float(approved['Score'].mean()), 2) if approved['Score'].notna().any() else None,
            })
        self._write(writer, pd.DataFrame(rows, columns=[
            'Department', 'Students', 'Participating Students', 'Activities', 'Approved',
            'Approved Credits', 'Average Score']), 'Department_Summary')

        categories = df.groupby('Category').size().reset_index(name='Activities') if not df.empty \
            else pd.DataFrame(columns=['Category', 'Activities'])
        self._write(writer, categories, 'Category_Breakdown')

        showcase = df[(df['Public'] == 'Yes') & (df['Status'] == APPROVED)]
        self._write(writer, showcase, 'Showcase')
        return {'departments': len(departments), 'showcaseActivities': len(showcase)}

    def _build_accreditation_report(self, writer, report, students, activities):
        approved = [a for a in activities if a.status == APPROVED]
        df = self.activity_frame(approved)
        self._write(writer, df, 'Verified_Activities')

        if df.empty:
            summary = pd.DataFrame(columns=['Category', 'Activities', 'Students', 'Credits'])
        else:
            summary = df.groupby('Category').agg(
                Activities=('Title', 'count'),
                Students=('Student ID', 'nunique'),
                Credits=('Credits', 'sum'),
            ).reset_index()
        self._write(writer, summary, 'Category_Summary')

        participating = len({a.student_id for a in approved})
        rate = round(participating / len(students) * 100, 2) if students else 0
        return {'participatingStudents': participating, 'participationRate': rate}

    def _build_activity_analysis(self, writer, report, students, activities):
        df = self.activity_frame(activities)
        if df.empty:
            self._write(writer, pd.DataFrame(columns=['Category']), 'Category_Status')
            self._write(writer, pd.DataFrame(columns=['Month', 'Activities']), 'Monthly_Trend')
            return {'categories': 0}

        pivot = pd.pivot_table(df, index='Category', columns='Status', values='Title',
                               aggfunc='count', fill_value=0).reset_index()
        pivot.columns = [str(c) for c in pivot.columns]
        self._write(writer, pivot, 'Category_Status')

        months = pd.to_datetime(df['Start Date']).dt.strftime('%Y-%m')
        trend = months.value_counts().sort_index().rename_axis('Month').reset_index(name='Activities')
        self._write(writer, trend, 'Monthly_Trend')

        mode_split = df.groupby('Mode').size().reset_index(name='Activities')
        self._write(writer, mode_split, 'Mode_Split')
        return {'categories': int(df['Category'].nunique())}

    def _student_rows(self, students, activities):
        rows = []
        for student in students:
            approved = [a for a in activities if a.student_id == student.id and a.status == APPROVED]
            scores = [a.score for a in approved if a.score is not None and a.score > 0]
            rows.append({
                'Student ID': student.student_code,
                'Name': student.full_name,
                'Department': student.department,
                'Year': student.year,
                'CGPA': student.cgpa,
                'Approved Activities': len(approved),
                'Approved Credits': float(sum(a.credits or 0 for a in approved)),
                'Average Score': round(sum(scores) / len(scores), 2) if scores else None,
            })
        return rows

    def _build_performance_report(self, writer, report, students, activities):
        df = pd.DataFrame(self._student_rows(students, activities), columns=[
            'Student ID', 'Name', 'Department', 'Year', 'CGPA', 'Approved Activities',
            'Approved Credits', 'Average Score'])
        df = df.sort_values(['Approved Credits', 'Approved Activities'], ascending=False)
        df.insert(0, 'Rank', range(1, len(df) + 1))
        self._write(writer, df, 'Student_Performance')
        top = df.iloc[0]['Name'] if not df.empty else None
        return {'topPerformer': top}

    def _build_compliance_report(self, writer, report, students, activities):
        df = pd.DataFrame(self._student_rows(students, activities), columns=[
            'Student ID', 'Name', 'Department', 'Year', 'CGPA', 'Approved Activities',
            'Approved Credits', 'Average Score'])
        df['Required Credits'] = self.min_compliance_credits
        df['Compliant'] = df['Approved Credits'].map(lambda c: 'Yes' if c >= self.min_compliance_credits else 'No')
        self._write(writer, df, 'Compliance')
        compliant = int((df['Compliant'] == 'Yes').sum())
        return {
            'requiredCredits': self.min_compliance_credits,
            'compliantStudents': compliant,
            'nonCompliantStudents': len(df) - compliant,
        }

    def _build_custom_report(self, writer, report, students, activities):
        df = self.activity_frame(activities)
        self._write(writer, df, 'Activities')
        status_counts = df.groupby('Status').size().reset_index(name='Activities') if not df.empty \
            else pd.DataFrame(columns=['Status', 'Activities'])
        self._write(writer, status_counts, 'Status_Summary')
        return {}
