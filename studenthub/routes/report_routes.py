from flask import Blueprint, request, send_file
from flask_login import current_user, login_required

from studenthub import report_queue
from studenthub.auth import ok, page_envelope, parse_body, role_required
from studenthub.errors import NotFound
from studenthub.schemas import PortfolioRequest, ReportCreate, ShareRequest
from studenthub.services.portfolio import PortfolioGenerator
from studenthub.services.report_service import ReportService, XLSX_MIMETYPE

report_bp = Blueprint('reports', __name__)

MIMETYPES = {'pdf': 'application/pdf', 'xlsx': XLSX_MIMETYPE}


def _actor():
    return current_user._get_current_object()


def _may_generate_portfolio(actor, student):
    if actor.role == 'admin' or actor.id == student.id:
        return True
    return actor.role == 'faculty' and bool(actor.department) and actor.department == student.department


@report_bp.route('/portfolio/<int:student_id>', methods=['POST'])
@login_required
def generate_portfolio(student_id):
    payload = parse_body(PortfolioRequest)
    actor = _actor()
    student = PortfolioGenerator.resolve_student(student_id)
    if not _may_generate_portfolio(actor, student):
        raise NotFound('Student not found')

    report, portfolio = PortfolioGenerator.generate(
        student, actor, include_all=payload.include_all, template=payload.template)
    return ok({
        'report': report.to_dict(),
        'downloadUrl': portfolio['url'],
        'filename': portfolio['filename'],
        'size': portfolio['size'],
        'activitiesCount': portfolio['activitiesCount'],
    }, 'Portfolio generated successfully')


@report_bp.route('', methods=['GET'])
@login_required
def list_reports():
    pagination = ReportService.list_reports(
        _actor(),
        report_type=request.args.get('type'),
        purpose=request.args.get('purpose'),
        status=request.args.get('status', 'completed'),
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', 10, type=int),
    )
    return page_envelope(pagination, [r.to_dict() for r in pagination.items])


@report_bp.route('', methods=['POST'])
@role_required('faculty', 'admin')
def create_report():
    payload = parse_body(ReportCreate)
    report = ReportService.create_custom(_actor(), payload)
    # Serialize before submitting: an eager queue finishes the job in-line
    body = report.to_dict()
    report_queue.submit(report.id)
    return ok(body, 'Report generation started', 202)


@report_bp.route('/analytics/department', methods=['GET'])
@role_required('faculty', 'admin')
def department_analytics():
    data = ReportService.department_analytics(
        _actor(),
        department=request.args.get('department') or None,
        academic_year=request.args.get('academicYear') or None,
    )
    return ok(data)


@report_bp.route('/<int:report_id>', methods=['GET'])
@login_required
def get_report(report_id):
    report = ReportService.get_accessible(_actor(), report_id)
    return ok(report.to_dict())


@report_bp.route('/<int:report_id>', methods=['DELETE'])
@login_required
def delete_report(report_id):
    ReportService.delete(_actor(), report_id)
    return ok(message='Report deleted successfully')


@report_bp.route('/<int:report_id>/download', methods=['GET'])
@login_required
def download_report(report_id):
    report, path = ReportService.download_path(_actor(), report_id)
    return send_file(
        path,
        mimetype=MIMETYPES.get(report.file_type, 'application/octet-stream'),
        as_attachment=True,
        download_name=report.file_original_name or report.file_name,
    )


@report_bp.route('/<int:report_id>/share', methods=['POST'])
@login_required
def share_report(report_id):
    payload = parse_body(ShareRequest)
    ReportService.share(_actor(), report_id, payload.user_id, payload.permissions)
    return ok(message='Report shared successfully')
