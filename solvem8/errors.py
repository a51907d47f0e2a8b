"""
Service-level exceptions.

Routes translate these into HTTP status codes; the message of each exception
is safe to show to the caller, details go to the log.
"""


class Solvem8Error(Exception):
    """Base class for errors raised by the service layer"""
    status_code = 500
    public_message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.public_message)


class UnsupportedMediaType(Solvem8Error):
    status_code = 400
    public_message = "Unsupported file type"

    def __init__(self, media_type=None):
        self.media_type = media_type
        super().__init__(f"Unsupported file type: {media_type}" if media_type else None)


class ExtractionError(Solvem8Error):
    public_message = "Failed to extract text from file"


class AIServiceError(Solvem8Error):
    public_message = "Failed to process assignment"


class PDFRenderError(Solvem8Error):
    public_message = "Failed to generate PDF"


class FileStoreError(Solvem8Error):
    public_message = "Failed to store file"


class PaymentError(Solvem8Error):
    public_message = "Failed to initiate payment"


class QuotaExhausted(Solvem8Error):
    status_code = 403
    public_message = "No free attempts remaining"
