"""Deterministic physical resource naming."""

from __future__ import annotations

import hashlib
import re

from stacklayer.units.models import Locality

MAX_NAME_LENGTH = 63
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    return _SLUG_RE.sub("-", value.lower()).strip("-")


def physical_name(app_name: str, locality: Locality, unit_name: str, logical_id: str) -> str:
    """
    Build the physical name for a resource.

    The same inputs always give the same name, and the digest keeps names
    distinct across accounts and regions, so reapplying a deployment targets
    the resources it created before instead of colliding with them.
    """
    digest = hashlib.sha256(
        f"{locality.account}/{locality.region}/{unit_name}/{logical_id}".encode()
    ).hexdigest()[:8]
    base = "-".join(part for part in (slugify(app_name), slugify(unit_name), slugify(logical_id)) if part)
    base = base[: MAX_NAME_LENGTH - len(digest) - 1].rstrip("-")
    return f"{base}-{digest}"
