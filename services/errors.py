"""Failures raised by the detection services.

Each error carries a stable ``kind`` for clients, the HTTP status it maps to
and a human-readable message. 5xx errors use generic messages; details go to
the log.
"""


class DetectionError(Exception):
    kind = "DetectionError"
    status_code = 500
    message = "Something went very wrong!"

    def __init__(self, message=None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_response(self):
        return {
            "status": "fail" if self.status_code < 500 else "error",
            "kind": self.kind,
            "message": self.message,
        }


class MissingFile(DetectionError):
    kind = "MissingFile"
    status_code = 400
    message = "Please upload an image file."


class UnexpectedFile(DetectionError):
    kind = "UnexpectedFile"
    status_code = 400
    message = "Please upload only one image file."


class InvalidFileType(DetectionError):
    kind = "InvalidFileType"
    status_code = 400
    message = "Not an image! Please upload only images."


class DecodeError(DetectionError):
    kind = "DecodeError"
    status_code = 400
    message = "The uploaded file could not be decoded as an image."


class UpstreamUnavailable(DetectionError):
    kind = "UpstreamUnavailable"
    status_code = 503
    message = "The classification service is unavailable."


class UpstreamError(DetectionError):
    kind = "UpstreamError"
    status_code = 502
    message = "The classification service returned an error."


class MalformedResponse(DetectionError):
    kind = "MalformedResponse"
    status_code = 502
    message = "The classification service returned an unexpected response."


class PersistenceError(DetectionError):
    kind = "PersistenceError"
    status_code = 500
    message = "The detection could not be saved."


class LinkError(DetectionError):
    kind = "LinkError"
    status_code = 500
    message = "The detection could not be linked to its owner."


class MissingPrediction(DetectionError):
    kind = "MissingPrediction"
    status_code = 400
    message = "Missing 'prediction' in request body"


class InvalidRequest(DetectionError):
    kind = "InvalidRequest"
    status_code = 400
    message = "The request could not be parsed."
