import json
from email.utils import formatdate
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse, StreamingResponse
from starlette.datastructures import UploadFile

from app.dependencies import get_settings, get_storage_manager
from app.services.auth_guard import require_basic_auth
from app.services.storage_manager import StorageManager, iter_file
from config import Settings
from logger_config import setup_logger

logger = setup_logger()

router = APIRouter()

USAGE_TEMPLATE = """# if you are me, copy this to your ~/.bashrc
# and use it like this: share somefile.txt
# a download link will be echoed
# don't forget to replace user/pass!
function share () {{
\tcurl -u user:pass -F "file=@$1" {base_url}/upload
}}"""

MISSING_FILENAME = "Missing query parameter e.g. `?f=examplefile.txt`"
NO_SUCH_FILE = "http: no such file"

# Every verb is routed: home answers them all, and on /upload the guard
# runs before the method check
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class BodyTooLarge(Exception):
    pass


def limit_body(receive, max_size: int):
    """Wrap an ASGI receive callable so it fails once max_size bytes have arrived."""
    received = 0

    async def limited_receive():
        nonlocal received
        message = await receive()
        if message["type"] == "http.request":
            received += len(message.get("body", b""))
            if received > max_size:
                raise BodyTooLarge(f"request body exceeds {max_size} bytes")
        return message

    return limited_receive


def check_content_length(request: Request, max_size: int) -> bool:
    """Return False if the declared Content-Length is already over the limit."""
    content_length = request.headers.get("content-length")
    if content_length is None:
        return True
    try:
        return int(content_length) <= max_size
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Content-Length header")


def content_disposition(filename: str) -> str:
    # JSON string syntax escapes quotes, backslashes and control characters
    # and keeps the value ASCII, so the name can't break out of the header
    return f"attachment; filename={json.dumps(filename)}"


@router.api_route("/", methods=ALL_METHODS, response_class=PlainTextResponse)
async def home(settings: Settings = Depends(get_settings)):
    return USAGE_TEMPLATE.format(base_url=settings.base_url)


@router.get("/dl")
async def download(
    f: Optional[str] = None,
    storage_manager: StorageManager = Depends(get_storage_manager),
):
    """Serve a shared file as an attachment. No authentication."""
    if not f:
        raise HTTPException(status_code=400, detail=MISSING_FILENAME)

    logger.info(f"Receiving download request for: {f}")

    try:
        path, stat = await storage_manager.stat_download(f)
    except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
        raise HTTPException(status_code=404, detail="404 page not found")
    except PermissionError:
        raise HTTPException(status_code=403, detail="403 Forbidden")

    headers = {
        "Content-Disposition": content_disposition(f),
        "Content-Length": str(stat.st_size),
        "Last-Modified": formatdate(stat.st_mtime, usegmt=True),
    }
    return StreamingResponse(
        iter_file(path),
        media_type="application/octet-stream",
        headers=headers,
    )


@router.api_route("/upload", methods=ALL_METHODS, response_class=PlainTextResponse)
async def upload(
    request: Request,
    username: str = Depends(require_basic_auth),
    settings: Settings = Depends(get_settings),
    storage_manager: StorageManager = Depends(get_storage_manager),
):
    """Store a multipart ``file`` part and reply with its download link."""
    if request.method != "POST":
        raise HTTPException(status_code=status.HTTP_405_METHOD_NOT_ALLOWED, detail="Method not allowed")

    max_size = settings.max_upload_size
    too_large = HTTPException(
        status_code=400,
        detail=f"File too large. Must be smaller than {max_size} bytes",
    )
    if not check_content_length(request, max_size):
        raise too_large

    # Parser errors on malformed multipart surface as HTTPException(400)
    limited = Request(request.scope, receive=limit_body(request.receive, max_size))
    try:
        form = await limited.form()
    except BodyTooLarge:
        raise too_large

    try:
        file = form.get("file")
        if not isinstance(file, UploadFile) or not file.filename:
            raise HTTPException(status_code=400, detail=NO_SUCH_FILE)

        logger.info(f"Receiving upload from {username} for: {file.filename}")

        # The filename is trusted verbatim, including separators. Only
        # authenticated callers get here, whereas downloads confine the path.
        try:
            _, written = await storage_manager.save_upload(file)
        except OSError as e:
            logger.error(f"Error storing upload {file.filename}: {str(e)}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))
    finally:
        await form.close()

    logger.info(f"Stored {file.filename} ({written} bytes)")
    return f"{settings.base_url}/dl?f={quote(file.filename)}"
