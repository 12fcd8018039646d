"""Synchronization between the similarity and structured stores."""

from knowledge_lifecycle.sync.module import SyncMode, SyncModule, SyncReport

__all__ = ["SyncMode", "SyncModule", "SyncReport"]
