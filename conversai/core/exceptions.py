from fastapi import HTTPException, status

class NotFoundError(HTTPException):
    """A chat, message or version the caller asked for does not exist"""

    entity = "Resource"

    def __init__(self, entity: str = None):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{entity or self.entity} not found"
        )

class ChatNotFoundError(NotFoundError):
    entity = "Chat"

class MessageNotFoundError(NotFoundError):
    entity = "Message"

class VersionNotFoundError(NotFoundError):
    entity = "Version"

class AssistantMessageNotFoundError(NotFoundError):
    entity = "Assistant message"

class BadRequestError(HTTPException):
    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail
        )

class MissingParameterError(BadRequestError):
    def __init__(self, *names: str):
        super().__init__(f"Missing {' or '.join(names)}")

class InvalidActionError(BadRequestError):
    def __init__(self):
        super().__init__("Invalid action")


class UpstreamError(Exception):
    """The LLM provider failed or returned an unusable response."""
    pass


class StorageError(Exception):
    """Base exception for object storage operations."""
    pass


class StorageConfigurationError(StorageError):
    """Object storage is not properly configured."""
    pass


class StorageUploadError(StorageError):
    """Failed to upload to object storage."""
    pass
