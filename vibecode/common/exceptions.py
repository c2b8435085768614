from fastapi import HTTPException, status


class VibeCodeException(HTTPException):
    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(VibeCodeException):
    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class ValidationFailed(VibeCodeException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class PathTraversal(ValidationFailed):
    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Unsafe file path rejected: {path!r}")


class GenerationInProgress(VibeCodeException):
    def __init__(self, app_id: int):
        self.app_id = app_id
        super().__init__(
            detail=f"A generation for app {app_id} is already in progress",
            status_code=status.HTTP_409_CONFLICT,
        )


class GenerationFailed(VibeCodeException):
    def __init__(self, detail: str, partial_output: str = ""):
        self.partial_output = partial_output
        super().__init__(detail=f"Generation failed: {detail}", status_code=status.HTTP_502_BAD_GATEWAY)


class IOFailure(VibeCodeException):
    def __init__(self, detail: str = "Failed to access artifact storage"):
        super().__init__(detail=detail, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)


class StoreUnavailable(VibeCodeException):
    def __init__(self, detail: str = "Conversation store unavailable"):
        super().__init__(detail=detail, status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
