import io
import logging
from collections import OrderedDict
from datetime import datetime

from flask import render_template
from xhtml2pdf import pisa

from studenthub.models import db, Activity, Report, User, APPROVED, REPORT_COMPLETED
from studenthub.errors import NotFound, ReportGenerationError
from studenthub import storage

logger = logging.getLogger(__name__)

MAX_SKILLS = 20
TEMPLATES = ('standard', 'compact')


def format_category(category):
    return category.replace('_', ' ').title()


class PortfolioGenerator:
    """
    Builds a student's PDF portfolio.

    Rendering goes through the Jinja template `reports/portfolio.html` and
    xhtml2pdf; the result is stored under REPORTS_FOLDER and recorded as a
    completed `student_portfolio` Report.
    """

    @staticmethod
    def select_activities(student, include_all=False):
        query = Activity.query.filter(Activity.student_id == student.id)
        if not include_all:
            query = query.filter(Activity.status == APPROVED)
        return query.order_by(Activity.start_date.desc(), Activity.id.desc()).all()

    @staticmethod
    def calculate_stats(activities):
        total_credits = sum(a.credits or 0 for a in activities)

        # Unscored activities are left out of the average entirely
        scores = [a.score for a in activities if a.score is not None and a.score > 0]
        average = round(sum(scores) / len(scores), 2) if scores else 0

        breakdown = OrderedDict()
        for activity in activities:
            entry = breakdown.setdefault(activity.category, {'count': 0, 'credits': 0})
            entry['count'] += 1
            entry['credits'] += activity.credits or 0

        return {
            'totalActivities': len(activities),
            'totalCredits': total_credits,
            'averageScore': average,
            'categoriesCount': len(breakdown),
            'categoryBreakdown': dict(breakdown),
        }

    @staticmethod
    def extract_skills(activities, limit=MAX_SKILLS):
        seen = []
        for activity in activities:
            for skill in activity.skills_gained or []:
                if skill not in seen:
                    seen.append(skill)
        return seen[:limit]

    @staticmethod
    def group_by_category(activities):
        groups = OrderedDict()
        for activity in activities:
            groups.setdefault(activity.category, []).append(activity)
        return groups

    @staticmethod
    def render_html(student, activities, stats, skills, template='standard'):
        return render_template(
            'reports/portfolio.html',
            student=student,
            stats=stats,
            skills=skills,
            groups=PortfolioGenerator.group_by_category(activities),
            compact=(template == 'compact'),
            format_category=format_category,
            generated_at=datetime.utcnow().strftime('%Y-%m-%d %H:%M UTC'),
        )

    @staticmethod
    def render_pdf(html):
        pdf_buffer = io.BytesIO()
        pisa_status = pisa.CreatePDF(html, dest=pdf_buffer)
        if pisa_status.err:
            raise ReportGenerationError(f'Error creating PDF: {pisa_status.err}')
        return pdf_buffer.getvalue()

    @staticmethod
    def resolve_student(student_id):
        student = db.session.get(User, student_id)
        if student is None or student.role != 'student':
            raise NotFound('Student not found')
        return student

    @staticmethod
    def generate(student, actor, include_all=False, template='standard'):
        activities = PortfolioGenerator.select_activities(student, include_all)
        stats = PortfolioGenerator.calculate_stats(activities)
        skills = PortfolioGenerator.extract_skills(activities)

        html = PortfolioGenerator.render_html(student, activities, stats, skills, template)
        pdf = PortfolioGenerator.render_pdf(html)

        saved = storage.save_bytes(pdf, f'{student.full_name}_Portfolio.pdf', 'pdf')

        report = Report(
            title=f'Portfolio - {student.full_name}',
            type='student_portfolio',
            purpose='internal',
            template=template,
            departments=[student.department] if student.department else [],
            generated_by_id=actor.id,
            status=REPORT_COMPLETED,
        )
        report.students = [student]
        db.session.add(report)
        db.session.flush()

        saved['url'] = f'/api/reports/{report.id}/download'
        report.mark_completed(saved, {
            'totalActivities': stats['totalActivities'],
            'totalCredits': stats['totalCredits'],
            'averageScore': stats['averageScore'],
            'categoriesCount': stats['categoriesCount'],
            'skills': skills,
        })
        db.session.commit()

        logger.info("Generated portfolio report %s for student %s (%d activities)",
                    report.id, student.id, len(activities))
        return report, {
            'filename': saved['filename'],
            'url': saved['url'],
            'size': saved['size'],
            'activitiesCount': len(activities),
            'student': student.to_summary(),
            'generatedAt': report.completed_at.isoformat(),
        }
