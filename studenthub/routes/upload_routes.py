from flask import Blueprint, request, send_from_directory
from flask_login import current_user, login_required

from studenthub import storage
from studenthub.auth import ok, role_required
from studenthub.errors import ValidationFailed

upload_bp = Blueprint('upload', __name__)


@upload_bp.route('/single', methods=['POST'])
@login_required
def upload_single():
    info = storage.save_upload(request.files.get('file'), current_user)
    return ok(info, 'File uploaded successfully')


@upload_bp.route('/multiple', methods=['POST'])
@login_required
def upload_multiple():
    files = [f for f in request.files.getlist('files') if f and f.filename]
    if not files:
        raise ValidationFailed('No files uploaded')
    if len(files) > storage.MAX_FILES_PER_REQUEST:
        raise ValidationFailed(f'Too many files. Maximum {storage.MAX_FILES_PER_REQUEST} files allowed.')

    # Reject the whole batch before anything is written
    for f in files:
        storage.sniff_type(f.stream, f.filename)

    saved = [storage.save_upload(f, current_user) for f in files]
    return ok(saved, f'{len(saved)} files uploaded successfully')


@upload_bp.route('/files/<name>', methods=['GET'])
@login_required
def get_file(name):
    storage.resolve(storage.upload_folder(), name)
    return send_from_directory(storage.upload_folder(), name)


@upload_bp.route('/files/<name>', methods=['DELETE'])
@role_required('admin')
def delete_file(name):
    storage.delete_upload(name)
    return ok(message='File deleted successfully')


@upload_bp.route('/info/<name>', methods=['GET'])
@login_required
def file_info(name):
    return ok(storage.file_info(name))
