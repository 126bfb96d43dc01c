from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict

STATE_INCOMPLETE = "INCOMPLETE"
STATE_COMPLETE = "COMPLETE"


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    A registered identity as held by the storage backends.

    Fields:
    - id: UUID string, stable and opaque
    - email: unique login email (exact, case-sensitive match)
    - name: display name
    - password_hash: bcrypt hash; the plaintext is never stored
    - oauth_provider / oauth_id: optional federated-login pair
    """

    id: str
    email: str
    name: str
    password_hash: str
    oauth_provider: Optional[str]
    oauth_id: Optional[str]


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A task owned by exactly one identity.

    Fields:
    - id: UUID string
    - description: non-empty text, frozen once the task is COMPLETE
    - state: INCOMPLETE or COMPLETE
    - created_at: creation timestamp (UTC)
    - completed_at: set iff state is COMPLETE
    - creator_id: id of the owning UserEntity
    """

    id: str
    description: str
    state: str
    created_at: datetime
    completed_at: Optional[datetime]
    creator_id: str
