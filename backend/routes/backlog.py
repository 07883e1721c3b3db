from fastapi import APIRouter, HTTPException, Request, Depends
from typing import List
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from db import get_db
from models.backlog import BacklogCreate, BacklogUpdate, BacklogResponse, BacklogOverviewResponse
from services.backlog_service import BacklogService
from services.rate_limit import limit_api_read, limit_api_write
from routes.auth import get_current_user_id
from routes.common import raise_storage_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/backlogs", tags=["backlogs"])


@router.get("", response_model=List[BacklogResponse])
@limit_api_read()
async def list_backlogs(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """List all backlogs for the current user, newest first"""
    return await BacklogService(session).list_backlogs(user_id)


@router.post("", response_model=BacklogResponse, status_code=201)
@limit_api_write()
async def create_backlog(
    request: Request,
    body: BacklogCreate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    try:
        return await BacklogService(session).create_backlog(user_id, body.name, body.description)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "create backlog")


@router.get("/{backlog_id}", response_model=BacklogResponse)
@limit_api_read()
async def get_backlog(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    backlog = await BacklogService(session).get_backlog(backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")
    return backlog


@router.patch("/{backlog_id}", response_model=BacklogResponse)
@limit_api_write()
async def update_backlog(
    request: Request,
    backlog_id: str,
    body: BacklogUpdate,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    backlog_service = BacklogService(session)
    backlog = await backlog_service.get_backlog(backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    try:
        return await backlog_service.update_backlog(backlog, name=body.name, description=body.description)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "update backlog")


@router.delete("/{backlog_id}")
@limit_api_write()
async def delete_backlog(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Delete a backlog together with its stories, tasks, chat and tech stack"""
    try:
        deleted = await BacklogService(session).delete_backlog(backlog_id, user_id)
    except SQLAlchemyError as e:
        await raise_storage_error(session, e, "delete backlog")

    if not deleted:
        raise HTTPException(status_code=404, detail="Backlog not found")
    return {"message": "Backlog deleted"}


@router.get("/{backlog_id}/overview", response_model=BacklogOverviewResponse)
@limit_api_read()
async def get_backlog_overview(
    request: Request,
    backlog_id: str,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_db)
):
    """Story and task counts by status"""
    backlog_service = BacklogService(session)
    backlog = await backlog_service.get_backlog(backlog_id, user_id)
    if not backlog:
        raise HTTPException(status_code=404, detail="Backlog not found")

    counts = await backlog_service.get_overview(backlog)
    return BacklogOverviewResponse(backlog=BacklogResponse.model_validate(backlog), **counts)
