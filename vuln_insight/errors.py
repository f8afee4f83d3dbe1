"""Error kinds surfaced by the analyze and history endpoints.

Each carries the HTTP status and the human-readable message returned to the
client; the original exception text travels separately as ``details``.
"""


class AnalysisError(Exception):
    status_code = 500
    user_message = "Failed to analyze CSV file"

    def __init__(self, message=None, user_message=None):
        super().__init__(message or user_message or self.user_message)
        if user_message:
            self.user_message = user_message


class InvalidInputError(AnalysisError):
    status_code = 400
    user_message = "Invalid request"

    def __init__(self, user_message):
        super().__init__(user_message, user_message)


class NotFoundError(AnalysisError):
    status_code = 404
    user_message = "Analysis not found or expired"


class AnalysisTimeoutError(AnalysisError):
    user_message = "Analysis took too long. Please try with a smaller CSV file or try again."


class UpstreamAuthError(AnalysisError):
    user_message = "Invalid AI API key. Please check server configuration."


class UpstreamRateLimitError(AnalysisError):
    user_message = "API rate limit reached. Please try again in a few minutes."


class MalformedOutputError(AnalysisError):
    user_message = "AI returned invalid data format. Please try again."


class UpstreamError(AnalysisError):
    def __init__(self, message):
        super().__init__(message, f"AI analysis failed: {message}")


class StorageError(AnalysisError):
    user_message = "Failed to store analysis result"
