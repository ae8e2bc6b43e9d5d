"""
Recommender API routes
======================

API endpoints cho recommender lifecycle:
- POST   /api/recommenders          CREATE RECOMMENDER
- DELETE /api/recommenders/{name}   DROP RECOMMENDER
- GET    /api/recommenders          danh sách recommenders trong directory
- GET    /api/recommenders/{name}   directory entry + cells
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from app.recommender.errors import (
    NoRecommendersError,
    ReadOnlyTransactionError,
    RecommenderError,
    RecommenderExistsError,
    RecommenderNotFoundError,
    RecommenderValidationError,
)
from app.web.schemas.recommender import (
    CommandResponse,
    CreateRecommenderRequest,
    RecommenderDetailResponse,
    RecommenderResponse,
)
from app.web.services.recommender_service import RecommenderService
from app.web.utils.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/recommenders", tags=["recommenders"])


def to_http_exception(error: RecommenderError) -> HTTPException:
    """Map RecommenderError sang HTTP status."""
    if isinstance(error, RecommenderExistsError):
        status_code = 409
    elif isinstance(error, RecommenderValidationError):
        status_code = 400
    elif isinstance(error, (NoRecommendersError, RecommenderNotFoundError)):
        status_code = 404
    elif isinstance(error, ReadOnlyTransactionError):
        status_code = 409
    else:
        status_code = 500
    return HTTPException(
        status_code=status_code,
        detail={"level": error.level, "code": error.code, "message": error.message}
    )


@router.post(
    "/",
    response_model=CommandResponse,
    status_code=201,
    summary="Create recommender",
    description="""
    Tạo recommender: directory row, index table, và model/view tables cho
    mỗi cell (một cell cho mỗi tổ hợp giá trị context).
    """
)
async def create_recommender(
    request: CreateRecommenderRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await RecommenderService.create_recommender(db, request)
    except RecommenderError as e:
        logger.warning(f"CREATE RECOMMENDER {request.name} rejected: [{e.code}] {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error creating recommender {request.name}: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to create recommender: {str(e)}"
        )


@router.delete(
    "/{name}",
    response_model=CommandResponse,
    summary="Drop recommender",
    description="""
    Xóa mọi model/view tables của recommender, index table và directory row.
    """
)
async def drop_recommender(
    name: str,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await RecommenderService.drop_recommender(db, name)
    except RecommenderError as e:
        logger.warning(f"DROP RECOMMENDER {name} rejected: [{e.code}] {e.message}")
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Error dropping recommender {name}: {e}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to drop recommender: {str(e)}"
        )


@router.get(
    "/",
    response_model=List[RecommenderResponse],
    summary="List recommenders"
)
async def list_recommenders(db: AsyncSession = Depends(get_db)):
    return await RecommenderService.list_recommenders(db)


@router.get(
    "/{name}",
    response_model=RecommenderDetailResponse,
    summary="Describe recommender"
)
async def describe_recommender(
    name: str,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await RecommenderService.describe_recommender(db, name)
    except RecommenderError as e:
        raise to_http_exception(e)
