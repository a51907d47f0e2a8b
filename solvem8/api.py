"""
API Blueprint - upload, solve, PDF export and history
"""
import os

from flask import Blueprint, current_app, jsonify, request, send_file

from solvem8.auth import json_body, with_account
from solvem8.errors import QuotaExhausted, Solvem8Error
from solvem8.quota import check_quota, record_attempt
from solvem8.services import file_store
from solvem8.services.extraction import extract_text, resolve_media_type
from solvem8.services.formatting import format_extracted_text
from solvem8.services.openai_service import generate_solution
from solvem8.services.pdf_service import render_solution_pdf
from solvem8.storage import get_storage

api_bp = Blueprint('api', __name__)


def error_response(e: Solvem8Error):
    """Log the detail, return the public message"""
    if e.status_code >= 500:
        current_app.logger.error('%s: %s', type(e).__name__, e)
    return jsonify({'message': e.public_message}), e.status_code


def file_name_from_url(file_url):
    if not file_url:
        return 'Text Input'
    return file_url.rstrip('/').rsplit('/', 1)[-1] or 'Text Input'


@api_bp.route('/api/upload', methods=['POST'])
@with_account
def upload(account):
    file = request.files.get('file')
    if not file or not file.filename:
        return jsonify({'message': 'No file uploaded'}), 400

    filename = file.filename
    data = file.read()
    media_type = resolve_media_type(file.mimetype, filename)

    try:
        extracted = extract_text(data, media_type, ocr_timeout=current_app.config.get('OCR_TIMEOUT', 30))
        file_url = file_store.save_file(data, file_store.ASSIGNMENTS_FOLDER, filename, media_type)
    except Solvem8Error as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception('Upload failed for user %s (%s)', account.id, filename)
        return jsonify({'message': 'Failed to process file'}), 500

    current_app.logger.info('User %s uploaded %s (%s, %d bytes, %d chars)',
                            account.id, filename, media_type, len(data), len(extracted))
    return jsonify({
        'message': 'File uploaded successfully',
        'fileUrl': file_url,
        'extractedText': extracted,
        'formattedText': format_extracted_text(extracted),
        'fileName': filename
    }), 200


@api_bp.route('/api/process', methods=['POST'])
@with_account
def process(account):
    payload = json_body()
    text = (payload.get('text') or '').strip()
    file_url = (payload.get('fileUrl') or '').strip()
    if not text:
        return jsonify({'message': 'No text provided for processing'}), 400

    storage = get_storage()
    try:
        account = check_quota(storage, account)
    except QuotaExhausted as e:
        current_app.logger.info('User %s has no attempts left', account.id)
        return error_response(e)

    try:
        solution = generate_solution(text)
    except Solvem8Error as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception('Assignment processing failed for user %s', account.id)
        return jsonify({'message': 'Failed to process assignment'}), 500

    try:
        assignment = storage.create_assignment(
            user_id=account.id,
            file_name=(payload.get('fileName') or '').strip() or file_name_from_url(file_url),
            file_url=file_url,
            extracted_text=text,
            solution=solution,
            attempt_count=1,
        )
        account = record_attempt(storage, account)
    except Exception:
        current_app.logger.exception('Could not save solved assignment for user %s', account.id)
        return jsonify({'message': 'Failed to process assignment'}), 500

    current_app.logger.info('User %s solved assignment %s (attempts left: %s)',
                            account.id, assignment.id, account.free_attempts)
    return jsonify({
        'message': 'Assignment processed successfully',
        'solution': solution,
        'assignmentId': assignment.id
    }), 200


def find_assignment(storage, account, assignment_id, file_url):
    """The record a rendered PDF belongs to: by id if given, otherwise the
    newest record for the same file"""
    if assignment_id not in (None, ''):
        try:
            record = storage.get_assignment(int(assignment_id))
        except (TypeError, ValueError):
            return None
        return record if record and record.user_id == account.id else None
    if file_url:
        for record in storage.get_assignment_history(account.id):
            if record.file_url == file_url:
                return record
    return None


@api_bp.route('/api/generate-pdf', methods=['POST'])
@with_account
def generate_pdf(account):
    payload = json_body()
    solution = (payload.get('solution') or '').strip()
    question = (payload.get('question') or '').strip()
    file_url = (payload.get('fileUrl') or '').strip()
    if not solution:
        return jsonify({'message': 'No solution provided'}), 400

    storage = get_storage()
    try:
        pdf = render_solution_pdf(solution, question=question)
        pdf_url = file_store.save_file(pdf, file_store.OUTPUTS_FOLDER, 'solution.pdf', 'application/pdf')
    except Solvem8Error as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception('PDF generation failed for user %s', account.id)
        return jsonify({'message': 'Failed to generate PDF'}), 500

    record = find_assignment(storage, account, payload.get('assignmentId'), file_url)
    if record is not None:
        storage.update_assignment(record.id, processed_output_url=pdf_url)

    return jsonify({
        'message': 'PDF generated successfully',
        'pdfUrl': pdf_url
    }), 200


@api_bp.route('/api/assignments', methods=['GET'])
@with_account
def assignments(account):
    history = get_storage().get_assignment_history(account.id)
    return jsonify([record.to_dict() for record in history]), 200


@api_bp.route('/files/<path:key>', methods=['GET'])
def serve_file(key):
    path = file_store.local_path(key)
    if not path or not os.path.exists(path):
        return jsonify({'message': 'File not found'}), 404
    as_pdf = key.endswith('.pdf')
    return send_file(path, mimetype='application/pdf' if as_pdf else None,
                     as_attachment=as_pdf, download_name='solution.pdf' if as_pdf else None)
