"""
Uploaded case documents: bytes go to object storage, metadata to the store.

Documents can be grouped into folders. A folder may nest under a parent and
may be tied to one case; each case has at most one folder.
"""

from __future__ import annotations

import logging
import mimetypes
import re
from uuid import uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile

from lawyerzen.activity import ActivityRecorder, ActivityType, EntityType, get_activity_recorder
from lawyerzen.auth import SessionIdentity, require_auth
from lawyerzen.config import Settings
from lawyerzen.db import BatchOperation, Collections, DocumentService, OrderBy, QueryFilter
from lawyerzen.dependencies import get_app_settings, get_documents, get_storage_client
from lawyerzen.routes import INDEX_FALLBACK_HEADER
from lawyerzen.schemas import FolderCreate, FolderUpdate, OkResponse
from lawyerzen.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", dependencies=[Depends(require_auth)])

NEWEST_FIRST = OrderBy("createdAt", "desc")


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename).strip("._")
    return name or "upload"


def _get_owned(
    documents: DocumentService, collection: str, doc_id: str, user: SessionIdentity
) -> dict:
    record = documents.get_document_by_id(collection, doc_id)
    if not record or str(record.get("owner")) != user.user_id:
        raise HTTPException(status_code=404, detail="Not found")
    return record


def _delete_blobs(storage: StorageClient, paths: list[str]) -> None:
    for path in paths:
        try:
            storage.delete(path)
        except Exception:
            logger.exception("Failed to delete stored file %s", path)


# ---- Folders ----------------------------------------------------------------


def _check_folder_conflicts(
    documents: DocumentService,
    user: SessionIdentity,
    name: str,
    parent_id: str | None,
    case_id: str | None,
    exclude_id: str | None = None,
) -> None:
    folders = [
        folder
        for folder in documents.query_documents(
            Collections.FOLDERS, [QueryFilter("owner", "==", user.user_id)]
        )
        if folder["id"] != exclude_id
    ]
    wanted = name.strip().lower()
    if any(
        folder.get("parentId") == parent_id and folder.get("name", "").strip().lower() == wanted
        for folder in folders
    ):
        raise HTTPException(
            status_code=409, detail=f'A folder named "{name}" already exists in this location'
        )
    if case_id and any(folder.get("caseId") == case_id for folder in folders):
        raise HTTPException(status_code=409, detail="A folder already exists for this case")


@router.get("/folders")
def list_folders(
    response: Response,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    result = documents.query_documents(
        Collections.FOLDERS, [QueryFilter("owner", "==", user.user_id)], NEWEST_FIRST
    )
    if result.sorted_in_memory:
        response.headers[INDEX_FALLBACK_HEADER] = result.missing_index or "unknown"
    return list(result)


@router.post("/folders", status_code=201)
def create_folder(
    payload: FolderCreate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Folder name is required")
    if payload.parentId:
        _get_owned(documents, Collections.FOLDERS, payload.parentId, user)
    if payload.caseId:
        _get_owned(documents, Collections.CASES, payload.caseId, user)
    _check_folder_conflicts(documents, user, name, payload.parentId, payload.caseId)
    return documents.create_document(
        Collections.FOLDERS,
        {
            "owner": user.user_id,
            "name": name,
            "parentId": payload.parentId,
            "caseId": payload.caseId,
        },
    )


@router.put("/folders/{folder_id}")
def rename_folder(
    folder_id: str,
    payload: FolderUpdate,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    folder = _get_owned(documents, Collections.FOLDERS, folder_id, user)
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Folder name is required")
    updates: dict = {"name": name}
    # An explicit null unlinks the case; omitting caseId leaves it alone.
    if "caseId" in payload.model_fields_set:
        if payload.caseId:
            _get_owned(documents, Collections.CASES, payload.caseId, user)
        updates["caseId"] = payload.caseId
    _check_folder_conflicts(
        documents, user, name, folder.get("parentId"), updates.get("caseId"), exclude_id=folder_id
    )
    return documents.update_document(Collections.FOLDERS, folder_id, updates)


@router.delete("/folders/{folder_id}", response_model=OkResponse)
def delete_folder(
    folder_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    storage: StorageClient = Depends(get_storage_client),
):
    """Delete a folder and the documents filed directly in it."""
    _get_owned(documents, Collections.FOLDERS, folder_id, user)
    contained = documents.query_documents(
        Collections.DOCUMENTS,
        [QueryFilter("owner", "==", user.user_id), QueryFilter("folderId", "==", folder_id)],
    )
    documents.batch_write(
        [BatchOperation("delete", Collections.DOCUMENTS, id=doc["id"]) for doc in contained]
        + [BatchOperation("delete", Collections.FOLDERS, id=folder_id)]
    )
    _delete_blobs(storage, [doc["storagePath"] for doc in contained if doc.get("storagePath")])
    return OkResponse()


# ---- Files ------------------------------------------------------------------


@router.post("/upload", status_code=201)
def upload_documents(
    files: list[UploadFile] = File(...),
    case_id: str | None = Form(None, alias="caseId"),
    folder_id: str | None = Form(None, alias="folderId"),
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    storage: StorageClient = Depends(get_storage_client),
    settings: Settings = Depends(get_app_settings),
    recorder: ActivityRecorder = Depends(get_activity_recorder),
):
    if case_id:
        case = documents.get_document_by_id(Collections.CASES, case_id)
        if not case or str(case.get("owner")) != user.user_id:
            raise HTTPException(status_code=404, detail="Case not found")
    if folder_id:
        _get_owned(documents, Collections.FOLDERS, folder_id, user)

    # Every file is read and size-checked before anything is stored.
    pending = []
    for upload in files:
        data = upload.file.read()
        if len(data) > settings.max_upload_bytes:
            raise HTTPException(status_code=413, detail=f"{upload.filename} is too large")
        pending.append((upload, data))

    created: list[dict] = []
    stored_paths: list[str] = []
    try:
        for upload, data in pending:
            filename = _safe_filename(upload.filename or "upload")
            content_type = (
                upload.content_type
                or mimetypes.guess_type(filename)[0]
                or "application/octet-stream"
            )
            storage_path = f"documents/{user.user_id}/{uuid4().hex}/{filename}"
            storage.upload_bytes(storage_path, data, content_type)
            stored_paths.append(storage_path)
            created.append(
                documents.create_document(
                    Collections.DOCUMENTS,
                    {
                        "owner": user.user_id,
                        "caseId": case_id,
                        "folderId": folder_id,
                        "fileName": upload.filename or filename,
                        "fileType": content_type,
                        "size": len(data),
                        "storagePath": storage_path,
                    },
                )
            )
    except Exception:
        logger.error("Upload failed after %d file(s); rolling back", len(stored_paths))
        if created:
            documents.batch_write(
                [BatchOperation("delete", Collections.DOCUMENTS, id=doc["id"]) for doc in created]
            )
        _delete_blobs(storage, stored_paths)
        raise

    if created:
        names = ", ".join(doc["fileName"] for doc in created)
        recorder.stage(
            ActivityType.DOCUMENT_UPLOADED,
            f"Uploaded {names}",
            EntityType.DOCUMENT,
            created[0]["id"],
            {"fileName": created[0]["fileName"]},
        )
    return created


@router.get("")
def list_documents(
    response: Response,
    case_id: str | None = Query(None, alias="caseId"),
    folder_id: str | None = Query(None, alias="folderId"),
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
):
    filters = [QueryFilter("owner", "==", user.user_id)]
    if case_id:
        filters.append(QueryFilter("caseId", "==", case_id))
    if folder_id:
        filters.append(QueryFilter("folderId", "==", folder_id))
    result = documents.query_documents(Collections.DOCUMENTS, filters, NEWEST_FIRST)
    if result.sorted_in_memory:
        response.headers[INDEX_FALLBACK_HEADER] = result.missing_index or "unknown"
    return list(result)


@router.get("/{doc_id}/download")
def download_document(
    doc_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    storage: StorageClient = Depends(get_storage_client),
):
    record = _get_owned(documents, Collections.DOCUMENTS, doc_id, user)
    try:
        data = storage.get_bytes(record["storagePath"])
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="File missing from storage")
    return Response(
        content=data,
        media_type=record.get("fileType") or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{_safe_filename(record["fileName"])}"'},
    )


@router.get("/{doc_id}/url")
def get_document_url(
    doc_id: str,
    expires_in: int = Query(3600, ge=60, le=7 * 24 * 3600),
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    storage: StorageClient = Depends(get_storage_client),
):
    record = _get_owned(documents, Collections.DOCUMENTS, doc_id, user)
    return {"url": storage.presign_get(record["storagePath"], expires_in=expires_in)}


@router.delete("/{doc_id}", response_model=OkResponse)
def delete_document(
    doc_id: str,
    user: SessionIdentity = Depends(require_auth),
    documents: DocumentService = Depends(get_documents),
    storage: StorageClient = Depends(get_storage_client),
):
    record = _get_owned(documents, Collections.DOCUMENTS, doc_id, user)
    documents.delete_document(Collections.DOCUMENTS, doc_id)
    _delete_blobs(storage, [record["storagePath"]])
    return OkResponse()
