from uuid import UUID

from fastapi import HTTPException, Request

from recovery.models.shared import DEFAULT_WORKSPACE_ID


def get_current_workspace(request: Request) -> UUID:
    """Resolve the workspace for the request from the X-Workspace-Id header.

    Authentication lives in the gateway in front of this service; requests
    without the header fall back to the default workspace.
    """
    workspace_header = request.headers.get("X-Workspace-Id")
    if not workspace_header:
        return DEFAULT_WORKSPACE_ID
    try:
        return UUID(workspace_header)
    except ValueError:
        raise HTTPException(
            status_code=400, detail="Invalid X-Workspace-Id header"
        ) from None
