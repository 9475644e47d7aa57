from __future__ import annotations

import uuid


def new_id() -> str:
    """Opaque, globally unique entity identifier."""
    return str(uuid.uuid4())
