from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import FileResponse

from storage import StorageError

router = APIRouter(tags=["files"])


@router.get("/signed/{token}")
def read_signed_file(token: str, request: Request):
    """Serve a private document through a temporary signed link."""
    try:
        path = request.app.state.storage.resolve_signed(token)
    except StorageError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return FileResponse(path)


@router.get("/{bucket}/{key:path}")
def read_public_file(bucket: str, key: str, request: Request):
    try:
        path = request.app.state.storage.open_public(bucket, key)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)
