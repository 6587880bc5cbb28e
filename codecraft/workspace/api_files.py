"""HTTP API endpoints for workspace file operations."""

import logging
from typing import Literal

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from codecraft.workspace.service import WorkspaceService

logger = logging.getLogger("codecraft.workspace.api_files")

router = APIRouter(prefix="/api/files")


class WriteRequest(BaseModel):
    path: str = Field(min_length=1)
    content: str = ""


class CreateRequest(BaseModel):
    path: str = ""
    name: str = Field(min_length=1)
    type: Literal["file", "directory"] = "file"


class DeleteRequest(BaseModel):
    path: str = Field(min_length=1)


def get_workspace(request: Request) -> WorkspaceService:
    return request.app.state.workspace


@router.get("/list")
async def list_files(path: str = "", workspace: WorkspaceService = Depends(get_workspace)):
    """List one directory level, directories first."""
    return await workspace.list_dir(path)


async def _read(path: str, workspace: WorkspaceService) -> dict:
    content = await workspace.read_file(path)
    return {"content": content, "path": path, "name": path.rstrip("/").rsplit("/", 1)[-1]}


@router.get("/read")
async def read_file(path: str = "", workspace: WorkspaceService = Depends(get_workspace)):
    return await _read(path, workspace)


@router.get("/read/{path:path}")
async def read_file_by_path(path: str, workspace: WorkspaceService = Depends(get_workspace)):
    return await _read(path, workspace)


@router.post("/write")
async def write_file(body: WriteRequest, workspace: WorkspaceService = Depends(get_workspace)):
    await workspace.write_file(body.path, body.content)
    return {"success": True}


@router.post("/create")
async def create_entry(body: CreateRequest, workspace: WorkspaceService = Depends(get_workspace)):
    await workspace.create(body.path, body.name, body.type)
    return {"success": True}


@router.delete("/delete")
async def delete_entry(body: DeleteRequest, workspace: WorkspaceService = Depends(get_workspace)):
    """Delete a file or directory, stopping processes running inside it first."""
    await workspace.delete(body.path)
    return {"success": True}


@router.delete("/{path:path}")
async def delete_entry_by_path(path: str, workspace: WorkspaceService = Depends(get_workspace)):
    await workspace.delete(path)
    return {"success": True}
