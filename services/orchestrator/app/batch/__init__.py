from .progress import LocalProgressStore, MirroredProgressStore, ProgressStore, RepositoryProgressStore
from .runner import BatchRunner

__all__ = [
    "BatchRunner",
    "LocalProgressStore",
    "MirroredProgressStore",
    "ProgressStore",
    "RepositoryProgressStore",
]
