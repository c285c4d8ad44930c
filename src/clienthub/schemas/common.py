"""Field types shared by the domain schemas."""

from __future__ import annotations

import uuid
from typing import Annotated

from pydantic import AfterValidator


def _canonical_uuid(value: str) -> str:
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValueError(f"Invalid id: {value!r}") from None


# Row id carried as a string; malformed values fail validation (422) instead
# of reaching the database layer.
UUIDStr = Annotated[str, AfterValidator(_canonical_uuid)]
