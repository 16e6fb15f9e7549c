"""
wallpapy - accounts, history and prompt assembly for a wallpaper generator.

Quick start:
    from wallpapy import KVStore, CredentialStore, StateStore, aggregate_history

    store = KVStore(Path("~/.wallpapy/wallpapy.db").expanduser())
    token = CredentialStore(store).login("alice", "secret1").token
    history = await aggregate_history(StateStore(store).read())
"""

__version__ = "0.5.0"

from .auth import CredentialStore, LoginResult, TokenAuthority
from .config import ServerConfig, load_or_create_config
from .errors import (
    AuthenticationError,
    PacketError,
    PersistenceError,
    SummarizationError,
    ValidationError,
    WallpapyError,
)
from .history import aggregate_history, render_history
from .prompt import build_prompt_messages
from .service import Response, WallpapyService
from .state import StateStore
from .store import KVStore
from .types import ApplicationState, Classification, StyleConfig, StyleVariant

__all__ = [
    "ApplicationState",
    "AuthenticationError",
    "Classification",
    "CredentialStore",
    "KVStore",
    "LoginResult",
    "PacketError",
    "PersistenceError",
    "Response",
    "ServerConfig",
    "StateStore",
    "StyleConfig",
    "StyleVariant",
    "SummarizationError",
    "TokenAuthority",
    "ValidationError",
    "WallpapyError",
    "WallpapyService",
    "aggregate_history",
    "build_prompt_messages",
    "load_or_create_config",
    "render_history",
]
