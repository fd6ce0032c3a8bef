"""
Canonical schema endpoints used to render the pre-upload checklist and the
mapping targets.
"""
from fastapi import APIRouter, HTTPException

from onboarding.api.schemas.shared import CatalogResponse, FileTypeCatalogResponse
from onboarding.domain.mapping import catalog

router = APIRouter(tags=["catalog"])


@router.get("/api/catalog", response_model=CatalogResponse)
async def get_catalog_endpoint():
    """Return every canonical field, grouped by file type."""
    return CatalogResponse(
        success=True,
        file_types={ft.value: list(catalog.fields_for(ft)) for ft in catalog.file_types()},
    )


@router.get("/api/catalog/{file_type}", response_model=FileTypeCatalogResponse)
async def get_file_type_catalog_endpoint(file_type: str):
    fields = catalog.fields_for(file_type)
    if not fields:
        raise HTTPException(status_code=404, detail=f"Unknown file type: {file_type}")
    return FileTypeCatalogResponse(
        success=True,
        file_type=file_type,
        fields=list(fields),
        required_fields=list(catalog.required_field_names(file_type)),
    )
