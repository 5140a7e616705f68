from __future__ import annotations


class ChatError(Exception):
    """Base class for every failure the chat core knows how to report."""


class ChatValidationError(ChatError):
    """Request rejected locally, before any network call was made."""


class PaginationRequestError(ChatValidationError):
    pass


class ResponseFormatError(ChatError):
    """The backend answered, but the payload does not have the expected shape."""


class ApiError(ChatError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


def describe_error(ex: BaseException) -> str:
    if isinstance(ex, ApiError):
        return ex.detail or str(ex)
    text = str(ex)
    return text if text else type(ex).__name__
