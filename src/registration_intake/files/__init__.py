from .consistency import ConsistencyReport, reconcile, storage_stats
from .retrieval import FileRetrievalService

__all__ = ["ConsistencyReport", "FileRetrievalService", "reconcile", "storage_stats"]
