from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...domain.models import (
    Demo,
    DemoCreate,
    DemoView,
    NavigateRequest,
    Output,
    PromptUpdate,
    RegenerateRequest,
    SelectedModelsUpdate,
)
from ...security.auth import User, get_current_user, get_optional_user
from ...services.demo_service import get_demo_service

router = APIRouter(prefix="/demos", tags=["demos"])

@router.post("", response_model=Demo, status_code=status.HTTP_201_CREATED)
def create_demo(payload: DemoCreate, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().create_demo(user.user_id, payload.prompt)


@router.get("", response_model=List[Demo])
def list_demos(
    include_archived: bool = Query(default=False),
    limit: Optional[int] = Query(default=None, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
) -> List[Demo]:
    return get_demo_service().list_demos(user.user_id, include_archived=include_archived, limit=limit, offset=offset)


@router.get("/{demo_id}", response_model=DemoView)
def get_demo(demo_id: str, user: Optional[User] = Depends(get_optional_user)) -> DemoView:
    return get_demo_service().get_demo(demo_id, viewer_id=user.user_id if user else None)


@router.put("/{demo_id}/prompt", response_model=Demo)
def update_prompt(demo_id: str, payload: PromptUpdate, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().update_prompt(demo_id, user.user_id, payload.prompt)


@router.put("/{demo_id}/models", response_model=Demo)
def update_selected_models(demo_id: str, payload: SelectedModelsUpdate, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().update_selected_models(demo_id, user.user_id, payload.model_ids)


@router.post("/{demo_id}/regenerate", response_model=List[Output], status_code=status.HTTP_202_ACCEPTED)
def regenerate_models(
    demo_id: str,
    payload: Optional[RegenerateRequest] = None,
    user: User = Depends(get_current_user),
) -> List[Output]:
    model_ids = payload.model_ids if payload else None
    return get_demo_service().regenerate_models(demo_id, user.user_id, model_ids)


@router.post("/{demo_id}/models/{model_id}/regenerate", response_model=Output, status_code=status.HTTP_202_ACCEPTED)
def regenerate_single(demo_id: str, model_id: str, user: User = Depends(get_current_user)) -> Output:
    return get_demo_service().regenerate_single(demo_id, user.user_id, model_id)


@router.post("/{demo_id}/models/{model_id}/navigate", response_model=Demo)
def navigate_version(demo_id: str, model_id: str, payload: NavigateRequest, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().navigate_version(demo_id, user.user_id, model_id, payload.direction)


@router.post("/{demo_id}/archive", response_model=Demo)
def archive_demo(demo_id: str, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().archive(demo_id, user.user_id)


@router.post("/{demo_id}/unarchive", response_model=Demo)
def unarchive_demo(demo_id: str, user: User = Depends(get_current_user)) -> Demo:
    return get_demo_service().unarchive(demo_id, user.user_id)
