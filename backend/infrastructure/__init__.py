"""Infrastructure layer exports."""

from .jobs import InMemoryJobStore, JobMutator, JobStore, utcnow
from .uploads import UploadStorage, sanitise_filename

__all__ = [
    "InMemoryJobStore",
    "JobMutator",
    "JobStore",
    "UploadStorage",
    "sanitise_filename",
    "utcnow",
]
