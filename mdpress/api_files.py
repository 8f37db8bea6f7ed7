"""
API v1 document tree routes
"""
from fastapi import APIRouter, Depends, status

from .api_models import MessageResponse
from .dependencies import get_current_user, get_document_service
from .documents import DocumentService
from .models import (
    CreateItemRequest,
    DocumentTreeOut,
    FileOut,
    FolderOut,
    PreviewOut,
    UpdateFileRequest,
    UpdateFolderRequest,
)

files_router = APIRouter(prefix="/files", tags=["files"])


@files_router.get("", response_model=DocumentTreeOut, summary="List every folder and file of the caller")
async def get_tree(
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    tree = await documents.list_tree(user_id)
    return DocumentTreeOut(
        folders=[FolderOut.model_validate(f) for f in tree.folders],
        files=[FileOut.model_validate(f) for f in tree.files],
    )


@files_router.post("/file", response_model=FileOut, status_code=status.HTTP_201_CREATED,
                   summary="Create a markdown document")
async def create_file(
    body: CreateItemRequest,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    return FileOut.model_validate(await documents.create_file(user_id, body.name, body.parent_id))


@files_router.post("/folder", response_model=FolderOut, status_code=status.HTTP_201_CREATED,
                   summary="Create a folder")
async def create_folder(
    body: CreateItemRequest,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    return FolderOut.model_validate(await documents.create_folder(user_id, body.name, body.parent_id))


@files_router.get("/file/{file_id}", response_model=FileOut)
async def get_file(
    file_id: int,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    return FileOut.model_validate(await documents.get_document(user_id, file_id))


@files_router.get("/file/{file_id}/preview", response_model=PreviewOut, summary="Render a document to HTML")
async def preview_file(
    file_id: int,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    return PreviewOut(id=file_id, html=await documents.render_preview(user_id, file_id))


@files_router.put("/file/{file_id}", response_model=FileOut, summary="Rename, edit or move a document")
async def update_file(
    file_id: int,
    body: UpdateFileRequest,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    changes = body.model_dump(exclude_unset=True)
    return FileOut.model_validate(await documents.update_file(user_id, file_id, changes))


@files_router.put("/folder/{folder_id}", response_model=FolderOut, summary="Rename, move or expand a folder")
async def update_folder(
    folder_id: int,
    body: UpdateFolderRequest,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    changes = body.model_dump(exclude_unset=True)
    return FolderOut.model_validate(await documents.update_folder(user_id, folder_id, changes))


@files_router.delete("/file/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: int,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    await documents.delete_file(user_id, file_id)
    return MessageResponse(message="File deleted")


@files_router.delete("/folder/{folder_id}", response_model=MessageResponse,
                     summary="Delete a folder with everything inside it")
async def delete_folder(
    folder_id: int,
    user_id: int = Depends(get_current_user),
    documents: DocumentService = Depends(get_document_service)
):
    removed = await documents.delete_folder(user_id, folder_id)
    return MessageResponse(
        message=f"Deleted {removed['folders']} folders and {removed['files']} files"
    )
