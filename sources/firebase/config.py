from __future__ import annotations

import json
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import PAGE_SIZE, PAGE_TIMEOUT_S, PATH_WILDCARD


class FirebaseConfig(BaseModel):
    project_id: str
    credentials: str = Field(description="Service account JSON")
    page_size: int = Field(default=PAGE_SIZE, ge=1, le=1000)
    page_timeout_s: float = Field(default=PAGE_TIMEOUT_S, gt=0)

    @field_validator("project_id")
    @classmethod
    def _project_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("project_id is required")
        return v

    @field_validator("credentials")
    @classmethod
    def _credentials_json(cls, v: str) -> str:
        if not (v or "").strip():
            raise ValueError("credentials are required")
        try:
            parsed = json.loads(v)
        except ValueError as e:
            raise ValueError(f"credentials must be service account JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("credentials must be a JSON object")
        return v


class FirestoreParameters(BaseModel):
    """
    collection: path expression, either an exact collection name or
    `root/*/sub/*/subsub` to walk sub-collections of every document.
    """
    model_config = ConfigDict(populate_by_name=True)

    collection: str = Field(alias="firestore_collection")

    @field_validator("collection")
    @classmethod
    def _collection_required(cls, v: str) -> str:
        v = (v or "").strip().strip("/")
        if not v:
            raise ValueError("firestore_collection is required")
        for part in v.split(PATH_WILDCARD):
            if not part or "*" in part:
                raise ValueError(f"invalid collection path expression: {v}")
        return v

    def path_segments(self) -> List[str]:
        return self.collection.split(PATH_WILDCARD)
