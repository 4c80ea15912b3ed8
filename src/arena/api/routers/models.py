from __future__ import annotations

from typing import List

from fastapi import APIRouter

from ...domain.model_catalog import get_catalog
from ...domain.models import CatalogEntry

router = APIRouter(prefix="/models", tags=["models"])


@router.get("", response_model=List[CatalogEntry])
def list_models() -> List[CatalogEntry]:
    return [
        CatalogEntry(
            id=spec.id,
            name=spec.name,
            provider=spec.provider.display_name,
            default_enabled=spec.default_enabled,
            generatable=spec.generatable,
            alias_of=spec.alias_of,
        )
        for spec in get_catalog()
    ]
