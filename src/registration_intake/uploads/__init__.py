from .pipeline import StoredFile, UploadBatch, UploadPipeline, remove_quietly
from .policy import IDENTITY_FIELD, POLICIES, SIGNATURE_FIELD, FieldPolicy, UploadLimits

__all__ = [
    "FieldPolicy",
    "IDENTITY_FIELD",
    "POLICIES",
    "SIGNATURE_FIELD",
    "StoredFile",
    "UploadBatch",
    "UploadLimits",
    "UploadPipeline",
    "remove_quietly",
]
