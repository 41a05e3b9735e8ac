from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sources.runtime.config import parse_config
from sources.runtime.errors import ConfigurationError
from sources.runtime.protocol import Collection, Driver, ObjectsLoader, SourceConfig, TimeInterval

from .config import FirebaseConfig, FirestoreParameters
from .constants import (
    DOCUMENT_ID_FIELD,
    FIRESTORE_COLLECTION,
    REFRESH_WINDOW_HOURS,
    SOURCE_TYPE,
    USERS_COLLECTION,
)
from .convert import convert_specific_types
from .events import debug, error, info
from .paging import iter_documents
from .users import load_users


@dataclass
class FirebaseClients:
    """Firestore + Auth clients of one firebase_admin app."""

    firestore: Any
    auth: Any
    app: Any = None

    def close(self) -> None:
        close = getattr(self.firestore, "close", None)
        if callable(close):
            close()
        if self.app is not None:
            import firebase_admin

            firebase_admin.delete_app(self.app)
            self.app = None


def open_clients(config: FirebaseConfig) -> FirebaseClients:
    import firebase_admin
    from firebase_admin import auth, credentials, firestore

    try:
        cred = credentials.Certificate(json.loads(config.credentials))
    except ValueError as e:
        raise ConfigurationError(f"Invalid firebase credentials: {e}") from e

    # Named app so several drivers (or projects) can coexist in one process.
    app = firebase_admin.initialize_app(
        cred,
        {"projectId": config.project_id},
        name=f"sources-{config.project_id}-{uuid.uuid4().hex[:8]}",
    )
    try:
        return FirebaseClients(firestore=firestore.client(app=app), auth=auth.Client(app), app=app)
    except Exception:
        firebase_admin.delete_app(app)
        raise


class FirestoreDriver(Driver):
    """
    Firestore / Firebase Auth driver.

    - "firestore" collections: depth-first walk of a path expression
      (`root/*/sub/*/leaf`), one record per leaf document, carrying the ids of
      all its ancestors
    - "users" collections: every Firebase Auth principal

    No incremental windows: each sync reads the whole dataset.
    """

    type = SOURCE_TYPE

    def __init__(
        self,
        source_config: SourceConfig,
        collection: Collection,
        *,
        clients: Optional[FirebaseClients] = None,
    ):
        super().__init__(source_config, collection)
        self.config = parse_config(FirebaseConfig, source_config.config, what="firebase")

        if collection.type not in (FIRESTORE_COLLECTION, USERS_COLLECTION):
            raise ConfigurationError(
                f"Unsupported collection type {collection.type}: only [{USERS_COLLECTION}] "
                f"and [{FIRESTORE_COLLECTION}] collections are allowed"
            )

        self.parameters: Optional[FirestoreParameters] = None
        if collection.type == FIRESTORE_COLLECTION:
            self.parameters = parse_config(FirestoreParameters, collection.parameters, what="firestore collection")

        self.clients = clients or open_clients(self.config)

    def get_refresh_window(self) -> timedelta:
        return timedelta(hours=REFRESH_WINDOW_HOURS)

    def get_all_available_intervals(self) -> List[TimeInterval]:
        return [TimeInterval.all()]

    def get_objects_for(self, interval: TimeInterval, objects_loader: ObjectsLoader) -> None:
        if self.collection.type == FIRESTORE_COLLECTION:
            objects = self.load_collection()
        else:
            objects = load_users(self.clients.auth)
        objects_loader(objects, 0, len(objects), 0)

    def load_collection(self) -> List[Dict[str, Any]]:
        """
        Fetch every leaf document addressed by the path expression. Any error
        aborts the whole load; nothing partial is returned.
        """
        params = self.parameters
        if params is None:
            raise ConfigurationError(
                f"collection [{self.collection.name}] is not a [{FIRESTORE_COLLECTION}] collection"
            )
        expression = params.collection
        segments = params.path_segments()
        root = segments[0]

        # Firestore has no "missing collection": an absent one just lists nothing
        root_ref = self.clients.firestore.collection(root)

        result: List[Dict[str, Any]] = []
        try:
            self._dive_and_fetch(root_ref, {}, DOCUMENT_ID_FIELD, segments[1:], result, path=root)
        except Exception as e:
            error("firestore.load.failed", expression=expression, error=str(e))
            raise

        info("firestore.loaded", expression=expression, count=len(result))
        return result

    def _dive_and_fetch(
        self,
        collection_ref: Any,
        parent_ids: Mapping[str, Any],
        id_field: str,
        paths: Sequence[str],
        result: List[Dict[str, Any]],
        *,
        path: str,
    ) -> None:
        for doc in iter_documents(
            collection_ref,
            page_size=self.config.page_size,
            timeout_s=self.config.page_timeout_s,
            path=path,
        ):
            if paths:
                sub_name = paths[0]
                sub_ref = doc.reference.collection(sub_name)

                # fresh snapshot per document: siblings never share ancestor maps
                ids = {**parent_ids, id_field: doc.id}
                debug("firestore.dive", path=f"{path}/{doc.id}/{sub_name}")
                self._dive_and_fetch(
                    sub_ref,
                    ids,
                    f"{id_field}_{sub_name}",
                    paths[1:],
                    result,
                    path=f"{path}/{doc.id}/{sub_name}",
                )
                continue

            data = doc.to_dict()
            if not data:
                continue
            data = convert_specific_types(data)
            data[id_field] = doc.id
            data.update(parent_ids)
            result.append(data)

    def close(self) -> None:
        self.clients.close()


def driver(source_config: SourceConfig, collection: Collection, **kwargs: Any) -> FirestoreDriver:
    return FirestoreDriver(source_config, collection, **kwargs)


def test_connection(source_config: SourceConfig, clients: Optional[FirebaseClients] = None, **_: Any) -> None:
    """
    Reads one principal. Builds (and disposes of) clients when none are given.
    """
    config = parse_config(FirebaseConfig, source_config.config, what="firebase")
    owned = clients is None
    c = clients or open_clients(config)
    try:
        page = c.auth.list_users(max_results=1)
        next(iter(page.users), None)
    finally:
        if owned:
            c.close()


test_connection.__test__ = False  # type: ignore[attr-defined]
