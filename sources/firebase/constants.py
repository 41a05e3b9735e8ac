from __future__ import annotations

from typing import Final

CONNECTOR_NAME: Final[str] = "firebase"
SOURCE_TYPE: Final[str] = "firebase"

# Collection kinds
FIRESTORE_COLLECTION: Final[str] = "firestore"
USERS_COLLECTION: Final[str] = "users"

# Path expression separator: root/*/sub/*/subsub
PATH_WILDCARD: Final[str] = "/*/"

USER_ID_FIELD: Final[str] = "uid"
DOCUMENT_ID_FIELD: Final[str] = "_firestore_document_id"

# Firestore doesn't respect big requests
PAGE_SIZE: Final[int] = 100

# Seconds, per page request; each level gets a fresh budget
PAGE_TIMEOUT_S: Final[float] = 60 * 60

REFRESH_WINDOW_HOURS: Final[int] = 24
