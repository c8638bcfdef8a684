class NewsdeskError(Exception):
    kind = "error"

    def __init__(self, message: str = "", kind: str | None = None):
        super().__init__(message or self.kind)
        if kind:
            self.kind = kind


class FetchError(NewsdeskError):
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    NETWORK = "network"

    def __init__(self, message: str, kind: str, url: str = "", status: int | None = None):
        super().__init__(message, kind)
        self.url = url
        self.status = status


class ExtractError(NewsdeskError):
    NO_CONTENT = "no_content"
    INVALID_DOCUMENT = "invalid_document"


class ImageValidationError(NewsdeskError):
    kind = "invalid_image"


class SummarizeError(NewsdeskError):
    kind = "summarize_failed"


class PublishError(NewsdeskError):
    kind = "publish_failed"
