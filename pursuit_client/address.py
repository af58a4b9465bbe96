"""Shareable address helpers.

The address carries the canonical room code in ``room`` and, optionally, the
display name in ``name``. Any other query parameters are left untouched.
"""
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .models import canonical_room_code

ROOM_PARAM = 'room'
NAME_PARAM = 'name'


def room_code_from_address(address: Optional[str]) -> Optional[str]:
    if not address:
        return None
    for key, value in parse_qsl(urlsplit(address).query, keep_blank_values=True):
        if key == ROOM_PARAM:
            return canonical_room_code(value) or None
    return None


def normalize_address(address: Optional[str], room_code: str, player_name: Optional[str] = None) -> str:
    parts = urlsplit(address or '')
    name = (player_name or '').strip()
    replaced = (ROOM_PARAM, NAME_PARAM) if name else (ROOM_PARAM,)
    params = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in replaced]
    params.append((ROOM_PARAM, canonical_room_code(room_code)))
    if name:
        params.append((NAME_PARAM, name))
    return urlunsplit((parts.scheme, parts.netloc, parts.path or '/', urlencode(params), parts.fragment))
