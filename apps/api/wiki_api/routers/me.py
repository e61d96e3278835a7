from __future__ import annotations

from fastapi import APIRouter, Depends

from wiki_api.core.deps import WorkspaceContext, require_workspace
from wiki_api.schemas.me import MeResponse

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeResponse)
def me(ctx: WorkspaceContext = Depends(require_workspace)) -> MeResponse:
    return MeResponse(
        user=ctx.user,
        workspace=ctx.workspace,
        role=ctx.role.value,
    )
