from __future__ import annotations

from pydantic import BaseModel

from wiki_api.schemas.auth import UserOut, WorkspaceOut


class MeResponse(BaseModel):
    user: UserOut
    workspace: WorkspaceOut
    role: str
