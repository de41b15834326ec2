"""Design system library: every generation a signed-in user has received."""

from fastapi import APIRouter, Query

from src.dependencies import CurrentUserRequired, DesignSystemRepoDep
from src.exceptions import ResourceNotFoundError
from src.repositories.ports import SavedDesignSystem
from src.schemas.design_systems import DesignSystemItem, DesignSystemListResponse

router = APIRouter(prefix="/design-systems", tags=["Design Systems"])


def _item(saved: SavedDesignSystem) -> DesignSystemItem:
    return DesignSystemItem(
        id=saved.id,
        name=saved.name,
        brand_description=saved.brand_description,
        industry=saved.industry,
        audience=saved.audience,
        tier=saved.tier,
        cached=saved.cached,
        design_system=saved.design_system,
        created_at=saved.created_at,
    )


@router.get("", response_model=DesignSystemListResponse)
async def list_design_systems(
    user: CurrentUserRequired,
    designs: DesignSystemRepoDep,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> DesignSystemListResponse:
    """The current user's design systems, newest first."""
    saved = await designs.list_for_user(str(user.id), limit=limit, offset=offset)
    return DesignSystemListResponse(
        systems=[_item(s) for s in saved], limit=limit, offset=offset
    )


@router.get("/{design_system_id}", response_model=DesignSystemItem)
async def get_design_system(
    design_system_id: str,
    user: CurrentUserRequired,
    designs: DesignSystemRepoDep,
) -> DesignSystemItem:
    """One design system. Other users' systems are reported as not found."""
    saved = await designs.get_for_user(str(user.id), design_system_id)
    if saved is None:
        raise ResourceNotFoundError("Design system", design_system_id)
    return _item(saved)
