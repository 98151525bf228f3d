import logging
import os
import uuid
from datetime import datetime

import filetype
from flask import current_app
from werkzeug.utils import secure_filename

from studenthub.errors import ValidationFailed, NotFound

logger = logging.getLogger(__name__)

MAX_FILES_PER_REQUEST = 5

# Sniffed MIME type -> declared document type
ALLOWED_MIME_TYPES = {
    'application/pdf': 'pdf',
    'image/jpeg': 'image',
    'image/png': 'image',
    'image/gif': 'image',
    'application/msword': 'document',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': 'document',
}
# Plain text carries no signature, so it is accepted on extension alone
TEXT_EXTENSIONS = {'txt'}


def upload_folder():
    folder = current_app.config['UPLOAD_FOLDER']
    os.makedirs(folder, exist_ok=True)
    return folder


def reports_folder():
    folder = current_app.config['REPORTS_FOLDER']
    os.makedirs(folder, exist_ok=True)
    return folder


def file_url(filename):
    return f'/api/upload/files/{filename}'


def unique_name(original_name):
    safe = secure_filename(original_name or '') or 'file'
    return f'{uuid.uuid4().hex}_{safe}'


def sniff_type(file_stream, original_name):
    """Return ('pdf'|'image'|'document', mime) or raise ValidationFailed."""
    header = file_stream.read(2048)
    file_stream.seek(0)

    kind = filetype.guess(header)
    if kind is not None and kind.mime in ALLOWED_MIME_TYPES:
        return ALLOWED_MIME_TYPES[kind.mime], kind.mime

    extension = original_name.rsplit('.', 1)[-1].lower() if '.' in original_name else ''
    if kind is None and extension in TEXT_EXTENSIONS:
        return 'document', 'text/plain'

    raise ValidationFailed('Invalid file type. Only images, PDFs, and documents are allowed.')


def save_upload(file_storage, user):
    if file_storage is None or not file_storage.filename:
        raise ValidationFailed('No file uploaded')

    file_type, mime = sniff_type(file_storage.stream, file_storage.filename)
    filename = unique_name(file_storage.filename)
    path = os.path.join(upload_folder(), filename)
    file_storage.save(path)

    logger.info("User %s uploaded %s (%s)", user.id, filename, mime)
    return {
        'name': file_storage.filename,
        'filename': filename,
        'size': os.path.getsize(path),
        'mimetype': mime,
        'fileType': file_type,
        'url': file_url(filename),
        'uploadedBy': user.id,
        'uploadedAt': datetime.utcnow().isoformat(),
    }


def save_bytes(data, original_name, file_type):
    """Write a generated artifact (PDF, XLSX) under REPORTS_FOLDER."""
    filename = unique_name(original_name)
    path = os.path.join(reports_folder(), filename)
    with open(path, 'wb') as fh:
        fh.write(data)
    return {
        'filename': filename,
        'original_name': original_name,
        'file_type': file_type,
        'size': len(data),
        'path': path,
    }


def resolve(folder, filename):
    """Absolute path of an existing file inside folder; NotFound for anything else."""
    safe = secure_filename(filename)
    if not safe or safe != filename:
        raise NotFound('File not found')
    path = os.path.join(folder, safe)
    if not os.path.isfile(path):
        raise NotFound('File not found')
    return path


def file_info(filename):
    path = resolve(upload_folder(), filename)
    stats = os.stat(path)
    return {
        'filename': filename,
        'size': stats.st_size,
        'modified': datetime.utcfromtimestamp(stats.st_mtime).isoformat(),
        'url': file_url(filename),
    }


def delete_upload(filename):
    path = resolve(upload_folder(), filename)
    os.remove(path)
    logger.info("Deleted upload %s", filename)


def delete_artifact(filename):
    if not filename:
        return
    path = os.path.join(reports_folder(), secure_filename(filename))
    if os.path.isfile(path):
        os.remove(path)
