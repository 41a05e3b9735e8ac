from __future__ import annotations

from typing import Any, Dict, List

from .constants import USER_ID_FIELD
from .convert import ms_to_iso
from .events import info


def user_to_record(user: Any) -> Dict[str, Any]:
    """
    Project a firebase_admin ExportedUserRecord onto a flat record.
    """
    meta = getattr(user, "user_metadata", None)
    return {
        "email": user.email,
        USER_ID_FIELD: user.uid,
        "phone": user.phone_number,
        "sign_in_methods": [p.provider_id for p in (user.provider_data or [])],
        "disabled": bool(user.disabled),
        "created_at": ms_to_iso(getattr(meta, "creation_timestamp", None)),
        "last_login": ms_to_iso(getattr(meta, "last_sign_in_timestamp", None)),
        "last_refresh": ms_to_iso(getattr(meta, "last_refresh_timestamp", None)),
    }


def load_users(auth_client: Any) -> List[Dict[str, Any]]:
    """
    All principals, walked with the auth client's own page iterator.
    """
    users = [user_to_record(u) for u in auth_client.list_users().iterate_all()]
    info("users.loaded", count=len(users))
    return users
