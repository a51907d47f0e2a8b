"""
API Endpoint Tests
"""
import io
import json

from reportlab.pdfgen import canvas

from solvem8.services.extraction import PdfExtractor


def make_pdf(*pages):
    buf = io.BytesIO()
    c = canvas.Canvas(buf)
    for text in pages:
        c.drawString(72, 720, text)
        c.showPage()
    c.save()
    return buf.getvalue()


def upload(client, data, filename, content_type):
    return client.post('/api/upload', data={
        'file': (io.BytesIO(data), filename, content_type)
    }, content_type='multipart/form-data')


class TestHealthCheck:
    """Test health and version endpoints"""

    def test_healthz(self, client):
        response = client.get('/healthz')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert data['status'] == 'ok'
        assert data['database'] == 'ok'
        assert 'ocr_ready' in data
        assert 'openai_ready' in data

    def test_version(self, client):
        response = client.get('/version')
        assert response.status_code == 200

        data = json.loads(response.data)
        assert 'version' in data
        assert data['features']['payments'] is False


class TestUpload:

    def test_upload_requires_auth(self, client):
        response = upload(client, b'%PDF-1.4', 'homework.pdf', 'application/pdf')
        assert response.status_code == 401

    def test_upload_without_file(self, authenticated_client):
        response = authenticated_client.post('/api/upload', data={}, content_type='multipart/form-data')
        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'No file uploaded'

    def test_upload_unsupported_type(self, authenticated_client):
        response = upload(authenticated_client, b'just some notes', 'notes.txt', 'text/plain')
        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'Unsupported file type'

    def test_upload_pdf(self, authenticated_client, monkeypatch):
        monkeypatch.setattr(PdfExtractor, 'ocr_text', lambda self, data: '')
        pdf = make_pdf('Hello', 'World')

        response = upload(authenticated_client, pdf, 'homework.pdf', 'application/pdf')

        assert response.status_code == 200
        data = json.loads(response.data)
        assert data['fileName'] == 'homework.pdf'
        assert data['extractedText'].split() == ['Hello', 'World']
        assert data['formattedText'].split() == ['Hello', 'World']
        assert data['fileUrl'].startswith('/files/assignments/')
        assert data['fileUrl'].endswith('.pdf')

        stored = authenticated_client.get(data['fileUrl'])
        assert stored.status_code == 200
        assert stored.data == pdf

    def test_upload_does_not_spend_attempt(self, authenticated_client, storage, test_user, monkeypatch):
        monkeypatch.setattr(PdfExtractor, 'ocr_text', lambda self, data: '')
        upload(authenticated_client, make_pdf('Hello'), 'homework.pdf', 'application/pdf')
        assert storage.get_user(test_user.id).free_attempts == 3

    def test_upload_too_large(self, authenticated_client, app):
        app.config['MAX_CONTENT_LENGTH'] = 1024 * 1024
        response = upload(authenticated_client, b'0' * (2 * 1024 * 1024), 'big.pdf', 'application/pdf')

        assert response.status_code == 413
        assert json.loads(response.data)['message'] == 'File too large (max 1MB)'


class TestGeneratePdf:

    def test_requires_solution(self, authenticated_client):
        response = authenticated_client.post('/api/generate-pdf', json={'solution': '  '})
        assert response.status_code == 400
        assert json.loads(response.data)['message'] == 'No solution provided'

    def test_render_and_backfill(self, authenticated_client, storage, fake_ai):
        processed = authenticated_client.post('/api/process', json={
            'text': 'What is 2 + 2?',
            'fileUrl': '/files/assignments/abc.pdf',
        })
        assignment_id = json.loads(processed.data)['assignmentId']

        response = authenticated_client.post('/api/generate-pdf', json={
            'solution': '## Answer\n**1.** `2 + 2 = 4`\n- add the units',
            'question': 'What is 2 + 2?',
            'assignmentId': assignment_id,
        })

        assert response.status_code == 200
        pdf_url = json.loads(response.data)['pdfUrl']
        assert pdf_url.startswith('/files/outputs/')
        assert storage.get_assignment(assignment_id).processed_output_url == pdf_url

        download = authenticated_client.get(pdf_url)
        assert download.status_code == 200
        assert download.mimetype == 'application/pdf'
        assert download.data.startswith(b'%PDF')

    def test_backfill_by_file_url(self, authenticated_client, storage, fake_ai):
        authenticated_client.post('/api/process', json={
            'text': 'What is 2 + 2?',
            'fileUrl': '/files/assignments/abc.pdf',
        })

        response = authenticated_client.post('/api/generate-pdf', json={
            'solution': '4',
            'fileUrl': '/files/assignments/abc.pdf',
        })

        pdf_url = json.loads(response.data)['pdfUrl']
        record = storage.get_assignment_history(storage.get_user_by_username('testuser').id)[0]
        assert record.processed_output_url == pdf_url


class TestAssignments:

    def test_requires_auth(self, client):
        assert client.get('/api/assignments').status_code == 401

    def test_history_newest_first(self, authenticated_client, storage, fake_ai):
        for text in ('First question?', 'Second question?'):
            authenticated_client.post('/api/process', json={'text': text})

        response = authenticated_client.get('/api/assignments')
        assert response.status_code == 200

        history = json.loads(response.data)
        assert [item['extractedText'] for item in history] == ['Second question?', 'First question?']
        assert history[0]['fileName'] == 'Text Input'
        assert history[0]['attemptCount'] == 1
        assert history[0]['timestamp']

    def test_history_is_per_user(self, authenticated_client, storage, fake_ai):
        other = storage.create_user('other', 'other@example.com', 'password123')
        storage.create_assignment(user_id=other.id, file_name='theirs.pdf')

        response = authenticated_client.get('/api/assignments')
        assert json.loads(response.data) == []


class TestFiles:

    def test_unknown_key(self, client):
        assert client.get('/files/assignments/' + 'a' * 32 + '.pdf').status_code == 404

    def test_rejects_paths_we_did_not_issue(self, client):
        assert client.get('/files/../config.py').status_code == 404
        assert client.get('/files/assignments/notes.txt').status_code == 404
