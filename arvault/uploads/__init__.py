from arvault.uploads.coordinator import CompletionRequest, UploadSession, UploadSessionCoordinator

__all__ = ["CompletionRequest", "UploadSession", "UploadSessionCoordinator"]
