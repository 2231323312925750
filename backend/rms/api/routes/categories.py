"""Menu category routes."""

from typing import Annotated

from fastapi import APIRouter, Depends

from rms.core.responses import list_response
from rms.db.session import DbSession
from rms.schemas.category import CategoryReorder, CategoryResponse
from rms.services.category_service import CategoryService

router = APIRouter()


def get_category_service(db: DbSession) -> CategoryService:
    return CategoryService(db)


Categories = Annotated[CategoryService, Depends(get_category_service)]


@router.get("/")
def list_categories(categories: Categories, active_only: bool = False):
    return list_response(
        [CategoryResponse.model_validate(c) for c in categories.list_categories(active_only)]
    )


@router.put("/reorder")
def reorder_categories(data: CategoryReorder, categories: Categories):
    """Reassign display order for several categories at once."""
    updated = categories.reorder([p.model_dump() for p in data.categories])
    return {
        "message": "Categories reordered successfully",
        "categories": [CategoryResponse.model_validate(c) for c in updated],
    }
