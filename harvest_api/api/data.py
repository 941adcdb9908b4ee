"""Artifact API: list, read, download and delete crawl outputs."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from harvest_api.api.deps import get_result_store
from harvest_api.storage.result_store import XLSX_EXTENSION, ResultStore

router = APIRouter(prefix="/data")

_MEDIA_TYPES = {
    ".csv": "text/csv",
    XLSX_EXTENSION: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@router.get("/list")
async def list_files(store: ResultStore = Depends(get_result_store)):
    files = await run_in_threadpool(store.list_files)
    return [f.to_wire() for f in files]


# Declared before /{filename} so "download" is not taken as a file name
@router.get("/download/{filename}")
async def download_file(filename: str, store: ResultStore = Depends(get_result_store)):
    path, name = await run_in_threadpool(store.download, filename)
    media_type = _MEDIA_TYPES.get(path.suffix.lower(), "application/octet-stream")
    return FileResponse(path, media_type=media_type, filename=name)


@router.get("/{filename}")
async def read_file(filename: str, store: ResultStore = Depends(get_result_store)):
    """Rows of a CSV / XLSX artifact as JSON objects keyed by column name."""
    records = await run_in_threadpool(store.read, filename)
    return [r.as_row() for r in records]


@router.delete("/{filename}")
async def delete_file(filename: str, store: ResultStore = Depends(get_result_store)):
    await run_in_threadpool(store.remove, filename)
    return {"success": True}
