import logging
import os
import socket
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import CORS_ORIGINS, HOST, LOG_JSON, LOG_LEVEL, MAX_UPLOAD_BYTES, PORT, PUBLIC_DIR, STORAGE_ROOT
from .errors import BucketNotEmpty, BucketNotFound, ErrorKind, InvalidPath, ObjectNotFound, StorageError
from .logging_config import setup_logging
from .middleware import BodySizeLimitMiddleware, RequestLoggingMiddleware
from .schemas import BucketCreate, BucketListOut, BucketsOut, HealthOut, MessageOut, UploadOut
from .storage import FileStorage, infer_extension
from .validation import INVALID_BUCKET_NAME_MESSAGE, is_valid_bucket_name, is_valid_object_key

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.BAD_REQUEST: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

ENDPOINTS = [
    {"method": "GET", "path": "/health", "description": "Service status and endpoint list"},
    {"method": "PUT", "path": "/upload/:bucket?key=:key", "description": "Upload a file to a bucket"},
    {"method": "GET", "path": "/download/:bucket/:key", "description": "Download a file from a bucket"},
    {"method": "GET", "path": "/list/:bucket", "description": "List all files in a bucket"},
    {"method": "DELETE", "path": "/delete/:bucket/:key", "description": "Delete a file from a bucket"},
    {"method": "GET", "path": "/buckets", "description": "List all buckets"},
    {"method": "POST", "path": "/buckets", "description": "Create a bucket"},
    {"method": "DELETE", "path": "/buckets/:bucket", "description": "Delete an empty bucket"},
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.storage = FileStorage(STORAGE_ROOT)
    logger.info("Serving buckets from %s", app.state.storage.base_path)
    yield


app = FastAPI(title="bucketstore", lifespan=lifespan)

app.add_middleware(BodySizeLimitMiddleware, max_body_size=MAX_UPLOAD_BYTES)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def internal_error(exc: StorageError, detail: str) -> Exception:
    # tagged client errors pass through to storage_exception_handler
    if exc.kind is not ErrorKind.INTERNAL:
        return exc
    logger.error("%s: %s", detail, exc.message, exc_info=exc)
    return HTTPException(status_code=500, detail=detail)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": "Invalid request body"})


@app.exception_handler(StorageError)
async def storage_exception_handler(request: Request, exc: StorageError) -> JSONResponse:
    message = exc.message
    if exc.kind is ErrorKind.INTERNAL:
        logger.error(
            "Unhandled storage error on %s %s: %s",
            request.method,
            request.url.path,
            exc.message,
            exc_info=exc,
        )
        message = "Internal server error"
    return JSONResponse(status_code=STATUS_BY_KIND[exc.kind], content={"error": message})


@app.get("/health", response_model=HealthOut)
def health():
    return {"message": "S3 Clone API is running", "endpoints": ENDPOINTS}


@app.put("/upload/{bucket}", response_model=UploadOut)
def upload_object(
    bucket: str,
    key: str | None = None,
    file: UploadFile | str | None = File(default=None),
    storage: FileStorage = Depends(get_storage),
):
    # a plain form field named "file" is not an upload
    if not isinstance(file, StarletteUploadFile):
        raise HTTPException(status_code=400, detail="No file uploaded")
    if not is_valid_bucket_name(bucket):
        raise HTTPException(status_code=400, detail=INVALID_BUCKET_NAME_MESSAGE)

    content_type = file.content_type or ""
    if key:
        ext = infer_extension(content_type, key)
        if ext and not key.lower().endswith("." + ext.lower()):
            key = f"{key}.{ext}"
    else:
        key = file.filename or ""

    if not key:
        raise HTTPException(status_code=400, detail="Object key is required")
    if not is_valid_object_key(key):
        raise HTTPException(status_code=400, detail="Invalid object key")

    try:
        size = storage.save_object(bucket, key, file.file)
    except InvalidPath:
        raise HTTPException(status_code=400, detail="Invalid object key")
    except StorageError as e:
        raise internal_error(e, "Failed to upload file")

    return UploadOut(
        message="File uploaded successfully",
        bucket=bucket,
        key=key,
        size=size,
        mimetype=content_type,
    )


@app.get("/download/{bucket}/{key:path}")
def download_object(bucket: str, key: str, storage: FileStorage = Depends(get_storage)):
    try:
        path = storage.object_path(bucket, key)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)


@app.get("/list/{bucket}", response_model=BucketListOut)
def list_bucket(bucket: str, storage: FileStorage = Depends(get_storage)):
    try:
        files = storage.list_objects(bucket)
    except BucketNotFound:
        raise HTTPException(status_code=404, detail="Bucket not found")
    except StorageError as e:
        raise internal_error(e, "Failed to list bucket contents")
    return BucketListOut(bucket=bucket, files=files)


@app.delete("/delete/{bucket}/{key:path}", response_model=MessageOut)
def delete_object(bucket: str, key: str, storage: FileStorage = Depends(get_storage)):
    try:
        storage.delete_object(bucket, key)
    except ObjectNotFound:
        raise HTTPException(status_code=404, detail="File not found")
    except StorageError as e:
        raise internal_error(e, "Failed to delete file")
    return MessageOut(message=f"File {key} deleted successfully")


@app.get("/buckets", response_model=BucketsOut)
def list_buckets(storage: FileStorage = Depends(get_storage)):
    try:
        buckets = storage.list_buckets()
    except StorageError as e:
        raise internal_error(e, "Failed to list buckets")
    return BucketsOut(buckets=buckets)


@app.post("/buckets", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
def create_bucket(payload: BucketCreate | None = None, storage: FileStorage = Depends(get_storage)):
    name = payload.name if payload else ""
    if not name:
        raise HTTPException(status_code=400, detail="Bucket name is required")
    if not is_valid_bucket_name(name):
        raise HTTPException(status_code=400, detail=INVALID_BUCKET_NAME_MESSAGE)

    try:
        created = storage.create_bucket(name)
    except StorageError as e:
        raise internal_error(e, "Failed to create bucket")

    if not created:
        raise HTTPException(status_code=409, detail=f"Bucket '{name}' already exists")
    return MessageOut(message=f"Bucket '{name}' created successfully")


@app.delete("/buckets/{bucket}", response_model=MessageOut)
def delete_bucket(bucket: str, storage: FileStorage = Depends(get_storage)):
    if not bucket:
        raise HTTPException(status_code=400, detail="Bucket name is required")

    try:
        storage.delete_bucket(bucket)
    except BucketNotFound:
        raise HTTPException(status_code=404, detail=f"Bucket '{bucket}' not found")
    except BucketNotEmpty:
        raise HTTPException(status_code=409, detail=f"Cannot delete bucket '{bucket}': bucket is not empty")
    except StorageError as e:
        raise internal_error(e, f"Failed to delete bucket '{bucket}'")
    return MessageOut(message=f"Bucket '{bucket}' deleted successfully")


# lowest priority: anything the API routes above did not match
if os.path.isdir(PUBLIC_DIR):
    app.mount("/", StaticFiles(directory=PUBLIC_DIR, html=True), name="public")


def _local_ip() -> str:
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("8.8.8.8", 80))
            return sock.getsockname()[0]
    except OSError:
        return "localhost"


def run() -> None:
    setup_logging(LOG_LEVEL, LOG_JSON)
    logger.info("bucketstore running at http://%s:%d", HOST, PORT)
    logger.info("Access from other machines using: http://%s:%d", _local_ip(), PORT)
    uvicorn.run(app, host=HOST, port=PORT, log_config=None)


if __name__ == "__main__":
    run()
