from __future__ import annotations

from agentspace.db.repositories import SqliteWorkspaceStore
from agentspace.services.chat_service import ChatService

_store: SqliteWorkspaceStore | None = None
_chat_service: ChatService | None = None


def set_dependencies(store: SqliteWorkspaceStore, chat_service: ChatService) -> None:
    global _store, _chat_service
    _store = store
    _chat_service = chat_service


def get_store() -> SqliteWorkspaceStore:
    if _store is None:
        raise RuntimeError("Workspace store not initialized")
    return _store


def get_chat_service() -> ChatService:
    if _chat_service is None:
        raise RuntimeError("ChatService not initialized")
    return _chat_service
