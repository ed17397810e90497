"""
Storage Adapter - GridFS-backed storage for uploaded source documents and generated translations.
Files are addressed by their GridFS id (the order's `storage_id`) and served via /api/files/{storage_id}.
"""
import hashlib
import io
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Tuple
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorGridFSBucket
from database import database

logger = logging.getLogger(__name__)

FILE_URL_PREFIX = "/api/files"


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StoredFileNotFound(StorageError):
    """File not found in storage."""
    pass


class FileMetadata:
    """File metadata model."""
    def __init__(
        self,
        file_id: str,
        filename: str,
        content_type: str,
        size_bytes: int,
        sha256_hash: str,
        upload_timestamp: datetime,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        self.file_id = file_id
        self.filename = filename
        self.content_type = content_type
        self.size_bytes = size_bytes
        self.sha256_hash = sha256_hash
        self.upload_timestamp = upload_timestamp
        self.uploaded_by = uploaded_by
        self.metadata = metadata or {}

    @property
    def url(self) -> str:
        return file_url(self.file_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_id": self.file_id,
            "filename": self.filename,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "sha256_hash": self.sha256_hash,
            "upload_timestamp": self.upload_timestamp.isoformat() if self.upload_timestamp else None,
            "uploaded_by": self.uploaded_by,
            "metadata": self.metadata,
        }


def file_url(storage_id: str) -> str:
    return f"{FILE_URL_PREFIX}/{storage_id}"


class StorageAdapter(ABC):
    """Abstract base class for storage implementations."""

    @abstractmethod
    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FileMetadata:
        pass

    @abstractmethod
    async def download_file(self, file_id: str) -> Tuple[bytes, FileMetadata]:
        pass

    @abstractmethod
    async def get_file_metadata(self, file_id: str) -> Optional[FileMetadata]:
        pass

    @abstractmethod
    async def delete_file(self, file_id: str) -> bool:
        pass

    @abstractmethod
    async def file_exists(self, file_id: str) -> bool:
        pass


class GridFSStorageAdapter(StorageAdapter):
    """
    GridFS-based storage implementation.
    Stores files in MongoDB GridFS with content hash and uploader metadata.
    """

    def __init__(self, bucket_name: str = "order_files"):
        self.bucket_name = bucket_name
        self._bucket = None

    def _get_bucket(self) -> AsyncIOMotorGridFSBucket:
        if self._bucket is None:
            db = database.get_db()
            self._bucket = AsyncIOMotorGridFSBucket(db, bucket_name=self.bucket_name)
        return self._bucket

    def _files_collection(self):
        return database.get_db()[f"{self.bucket_name}.files"]

    @staticmethod
    def _to_object_id(file_id: str) -> Optional[ObjectId]:
        try:
            return ObjectId(file_id)
        except Exception:
            return None

    @staticmethod
    def _metadata_from_doc(file_doc: Dict[str, Any]) -> FileMetadata:
        gridfs_meta = file_doc.get("metadata") or {}
        uploaded = gridfs_meta.get("upload_timestamp")
        return FileMetadata(
            file_id=str(file_doc["_id"]),
            filename=file_doc["filename"],
            content_type=gridfs_meta.get("content_type", "application/octet-stream"),
            size_bytes=file_doc["length"],
            sha256_hash=gridfs_meta.get("sha256_hash", ""),
            upload_timestamp=datetime.fromisoformat(uploaded) if uploaded else datetime.now(timezone.utc),
            uploaded_by=gridfs_meta.get("uploaded_by"),
            metadata=gridfs_meta.get("custom_metadata", {}),
        )

    async def upload_file(
        self,
        content: bytes,
        filename: str,
        content_type: str,
        uploaded_by: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> FileMetadata:
        """Upload bytes to GridFS."""
        bucket = self._get_bucket()
        now = datetime.now(timezone.utc)
        sha256_hash = hashlib.sha256(content).hexdigest()

        gridfs_metadata = {
            "content_type": content_type,
            "sha256_hash": sha256_hash,
            "uploaded_by": uploaded_by,
            "upload_timestamp": now.isoformat(),
            "custom_metadata": metadata or {},
        }

        try:
            file_id = await bucket.upload_from_stream(
                filename,
                io.BytesIO(content),
                metadata=gridfs_metadata,
            )
        except Exception as e:
            logger.error(f"GridFS upload failed for {filename}: {e}")
            raise StorageError(f"Failed to store {filename}") from e

        file_meta = FileMetadata(
            file_id=str(file_id),
            filename=filename,
            content_type=content_type,
            size_bytes=len(content),
            sha256_hash=sha256_hash,
            upload_timestamp=now,
            uploaded_by=uploaded_by,
            metadata=metadata,
        )

        logger.info(f"File uploaded to GridFS: {filename} ({file_meta.file_id})")
        return file_meta

    async def download_file(self, file_id: str) -> Tuple[bytes, FileMetadata]:
        """Download file content and metadata. Raises StoredFileNotFound."""
        object_id = self._to_object_id(file_id)
        if object_id is None:
            raise StoredFileNotFound(f"Invalid file ID: {file_id}")

        file_doc = await self._files_collection().find_one({"_id": object_id})
        if not file_doc:
            raise StoredFileNotFound(f"File not found: {file_id}")

        stream = io.BytesIO()
        await self._get_bucket().download_to_stream(object_id, stream)
        return stream.getvalue(), self._metadata_from_doc(file_doc)

    async def get_file_metadata(self, file_id: str) -> Optional[FileMetadata]:
        object_id = self._to_object_id(file_id)
        if object_id is None:
            return None

        file_doc = await self._files_collection().find_one({"_id": object_id})
        if not file_doc:
            return None
        return self._metadata_from_doc(file_doc)

    async def delete_file(self, file_id: str) -> bool:
        """Delete file from GridFS. Returns False instead of raising."""
        object_id = self._to_object_id(file_id)
        if object_id is None:
            return False
        try:
            await self._get_bucket().delete(object_id)
            logger.info(f"File deleted from GridFS: {file_id}")
            return True
        except Exception as e:
            logger.error(f"Failed to delete file {file_id}: {e}")
            return False

    async def file_exists(self, file_id: str) -> bool:
        return await self.get_file_metadata(file_id) is not None


# Singleton instance
storage_adapter = GridFSStorageAdapter()


async def upload_order_file(
    content: bytes,
    filename: str,
    content_type: str,
    uploaded_by: Optional[str] = None,
    order_id: Optional[str] = None,
    source: str = "client_upload",
    page_count: Optional[int] = None,
) -> FileMetadata:
    """
    Store a document belonging to (or about to belong to) an order.
    page_count is kept with the file so orders are priced from the counted pages.
    """
    metadata = {"source": source}
    if order_id:
        metadata["order_id"] = order_id
    if page_count is not None:
        metadata["page_count"] = page_count
    return await storage_adapter.upload_file(
        content=content,
        filename=filename,
        content_type=content_type,
        uploaded_by=uploaded_by,
        metadata=metadata,
    )
