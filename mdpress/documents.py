"""
Per-user markdown document tree: folders, files and live preview
"""
from typing import Any, Dict, List, Mapping, Optional, Set
from dataclasses import dataclass

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .config import get_settings
from .database import Database
from .exceptions import DocumentNotFoundError, FolderNotFoundError, InvalidInputError
from .logging import logger, metrics
from .orm import BlogPost, File, Folder, utcnow
from .text import render_markdown


@dataclass
class DocumentTree:
    folders: List[Folder]
    files: List[File]


def _clean_name(name: Optional[str]) -> str:
    name = (name or "").strip()
    if not name:
        raise InvalidInputError("name", "must not be empty")
    return name


class DocumentService:
    """CRUD over a user's folders and markdown files"""

    def __init__(self, database: Database):
        self.database = database
        self.settings = get_settings()

    async def get_document(self, owner_id: int, document_id: int) -> File:
        async with self.database.session_scope() as session:
            return await self._owned_file(session, owner_id, document_id)

    async def list_tree(self, owner_id: int) -> DocumentTree:
        async with self.database.session_scope() as session:
            folders = (await session.scalars(
                select(Folder).where(Folder.user_id == owner_id).order_by(Folder.id)
            )).all()
            files = (await session.scalars(
                select(File).where(File.user_id == owner_id).order_by(File.id)
            )).all()
        return DocumentTree(folders=list(folders), files=list(files))

    async def create_file(self, owner_id: int, name: str, parent_id: Optional[int] = None) -> File:
        name = _clean_name(name)
        if not name.endswith(".md"):
            name = f"{name}.md"

        async with self.database.session_scope() as session:
            if parent_id is not None:
                await self._owned_folder(session, owner_id, parent_id)
            now = utcnow()
            document = File(
                name=name,
                content=self.settings.default_file_content,
                parent_id=parent_id,
                user_id=owner_id,
                created_at=now,
                updated_at=now,
            )
            session.add(document)
            await session.flush()

        await metrics.increment("documents_created_total")
        logger.debug("Document created", user_id=owner_id, document_id=document.id)
        return document

    async def create_folder(self, owner_id: int, name: str, parent_id: Optional[int] = None) -> Folder:
        name = _clean_name(name)
        async with self.database.session_scope() as session:
            if parent_id is not None:
                await self._owned_folder(session, owner_id, parent_id)
            now = utcnow()
            folder = Folder(
                name=name,
                parent_id=parent_id,
                user_id=owner_id,
                is_open=False,
                created_at=now,
                updated_at=now,
            )
            session.add(folder)
            await session.flush()
        return folder

    async def update_file(self, owner_id: int, file_id: int, changes: Mapping[str, Any]) -> File:
        """Apply ``name``, ``content`` and/or ``parent_id``; absent keys are left alone"""
        async with self.database.session_scope() as session:
            document = await self._owned_file(session, owner_id, file_id)

            if "name" in changes:
                document.name = _clean_name(changes["name"])
            if "content" in changes:
                document.content = changes["content"] or ""
            if "parent_id" in changes:
                parent_id = changes["parent_id"]
                if parent_id is not None:
                    await self._owned_folder(session, owner_id, parent_id)
                document.parent_id = parent_id

            document.updated_at = utcnow()
        return document

    async def update_folder(self, owner_id: int, folder_id: int, changes: Mapping[str, Any]) -> Folder:
        """Apply ``name``, ``parent_id`` and/or ``is_open``; absent keys are left alone"""
        async with self.database.session_scope() as session:
            folder = await self._owned_folder(session, owner_id, folder_id)

            if "name" in changes:
                folder.name = _clean_name(changes["name"])
            if "is_open" in changes and changes["is_open"] is not None:
                folder.is_open = bool(changes["is_open"])
            if "parent_id" in changes:
                parent_id = changes["parent_id"]
                if parent_id is not None:
                    await self._owned_folder(session, owner_id, parent_id)
                    subtree = await self._subtree_ids(session, owner_id, folder.id)
                    if parent_id in subtree:
                        raise InvalidInputError("parent_id", "cannot move a folder into itself or its descendants")
                folder.parent_id = parent_id

            folder.updated_at = utcnow()
        return folder

    async def delete_file(self, owner_id: int, file_id: int) -> None:
        async with self.database.session_scope() as session:
            document = await self._owned_file(session, owner_id, file_id)
            await self._detach_posts(session, [document.id])
            await session.delete(document)
        logger.debug("Document deleted", user_id=owner_id, document_id=file_id)

    async def delete_folder(self, owner_id: int, folder_id: int) -> Dict[str, int]:
        """Delete a folder with every nested folder and file"""
        async with self.database.session_scope() as session:
            await self._owned_folder(session, owner_id, folder_id)
            folder_ids = await self._subtree_ids(session, owner_id, folder_id)

            file_ids = (await session.scalars(
                select(File.id).where(File.user_id == owner_id, File.parent_id.in_(folder_ids))
            )).all()
            await self._detach_posts(session, file_ids)

            files_deleted = (await session.execute(
                delete(File).where(File.user_id == owner_id, File.parent_id.in_(folder_ids))
            )).rowcount
            folders_deleted = (await session.execute(
                delete(Folder).where(Folder.user_id == owner_id, Folder.id.in_(folder_ids))
            )).rowcount

        logger.info("Folder tree deleted",
                    user_id=owner_id,
                    folder_id=folder_id,
                    folders=folders_deleted,
                    files=files_deleted)
        return {"folders": folders_deleted, "files": files_deleted}

    async def render_preview(self, owner_id: int, file_id: int) -> str:
        document = await self.get_document(owner_id, file_id)
        return render_markdown(document.content)

    # ----- helpers -----

    async def _owned_file(self, session: AsyncSession, owner_id: int, file_id: int) -> File:
        document = await session.scalar(
            select(File).where(File.id == file_id, File.user_id == owner_id)
        )
        if document is None:
            raise DocumentNotFoundError(file_id)
        return document

    async def _owned_folder(self, session: AsyncSession, owner_id: int, folder_id: int) -> Folder:
        folder = await session.scalar(
            select(Folder).where(Folder.id == folder_id, Folder.user_id == owner_id)
        )
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    async def _subtree_ids(self, session: AsyncSession, owner_id: int, root_id: int) -> Set[int]:
        """Ids of ``root_id`` and all of its descendant folders, breadth first"""
        seen = {root_id}
        frontier = [root_id]
        while frontier:
            children = (await session.scalars(
                select(Folder.id).where(Folder.user_id == owner_id, Folder.parent_id.in_(frontier))
            )).all()
            frontier = [child for child in children if child not in seen]
            seen.update(frontier)
        return seen

    async def _detach_posts(self, session: AsyncSession, file_ids) -> None:
        """Published posts outlive their source document"""
        if not file_ids:
            return
        await session.execute(
            update(BlogPost)
            .where(BlogPost.source_document_id.in_(list(file_ids)))
            .values(source_document_id=None)
        )
