from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..core.db import get_db
from ..core.errors import AuthenticationError
from ..services.completion import CompletionClient, LazyCompletionClient
from ..services.enrichment import EnrichmentOrchestrator
from ..services.identity import SessionClaims, decode_session_token
from ..services.locks import get_inflight_locks
from ..services.store import RecordStore

bearer_scheme = HTTPBearer(auto_error=False)


def get_store(db: Session = Depends(get_db)) -> RecordStore:
    return RecordStore(db)


def get_completion() -> LazyCompletionClient:
    return LazyCompletionClient()


def get_orchestrator(
    store: RecordStore = Depends(get_store),
    completion: CompletionClient = Depends(get_completion),
) -> EnrichmentOrchestrator:
    return EnrichmentOrchestrator(store, completion, get_inflight_locks())


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(bearer_scheme),
) -> SessionClaims:
    """
    Bearer-token guard for every /api route.

    Missing, malformed, invalid and expired tokens are all rejected with 401
    before any handler logic runs.
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("No token provided")
    return decode_session_token(credentials.credentials)
