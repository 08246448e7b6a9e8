"""Public tutor listing endpoints"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from etuition.api.deps import require
from etuition.config import settings
from etuition.db.database import get_db
from etuition.schemas.applications import TutorListingPage, TutorListingResponse
from etuition.services.authorization import Operation
from etuition.services.listings import ListingProjection

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/", response_model=TutorListingPage)
async def browse_tutors(
    search: str | None = Query(None),
    subject: str | None = Query(None),
    location: str | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    db: AsyncSession = Depends(get_db),
) -> TutorListingPage:
    """Browse tutor listings by name, subject and location"""
    listings, total = await ListingProjection(db).browse(
        search=search, subject=subject, location=location, page=page, limit=limit
    )
    return TutorListingPage(
        tutors=[TutorListingResponse.model_validate(listing) for listing in listings],
        total=total,
        page=page,
        limit=limit,
    )


@router.delete("/orphans")
async def prune_orphaned_listings(
    _admin=Depends(require(Operation.PRUNE_LISTINGS)),
    db: AsyncSession = Depends(get_db),
) -> dict[str, int]:
    """Remove listings left behind by withdrawn applications (admin)"""
    removed = await ListingProjection(db).prune_orphans()
    await db.commit()
    return {"removed": removed}
