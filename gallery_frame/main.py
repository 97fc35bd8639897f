from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from .config import EXPORT_FILENAME, FrameSettings
from .errors import DecodeError, StorageError, ValidationError
from .gallery import GalleryModel
from .image_ops import IdClock, normalize
from .scheduler import RotationScheduler, SlotBoard
from .storage import ImageStore
from .sync import export_all, restore

logger = logging.getLogger(__name__)


def create_app(settings: FrameSettings | None = None) -> FastAPI:
    settings = settings or FrameSettings.from_env()

    store = ImageStore(settings.state_file)
    gallery = GalleryModel(store)
    board = SlotBoard(settings.slot_ids)
    scheduler = RotationScheduler(gallery, board.show, settings.slot_ids, settings.rotation_seconds)
    gallery.subscribe(scheduler.refresh)
    clock = IdClock()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await gallery.reload()
        clock.observe(max(gallery.ids, default=0))
        scheduler.start()
        try:
            yield
        finally:
            await scheduler.stop()
            store.close()

    app = FastAPI(title="Photo Frame Gallery", lifespan=lifespan)
    app.state.settings = settings
    app.state.store = store
    app.state.gallery = gallery
    app.state.board = board
    app.state.scheduler = scheduler
    app.state.clock = clock

    @app.exception_handler(DecodeError)
    async def decode_error_handler(request: Request, exc: DecodeError):
        logger.warning("rejected image on " + request.url.path + ": " + str(exc))
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error("storage failure on " + request.url.path + ": " + str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    async def ingest(payloads: list[bytes]) -> list[int]:
        # Decode everything first and store the batch in one write, so one bad
        # file or a failed write rejects the whole batch.
        records = [await asyncio.to_thread(normalize, payload, clock) for payload in payloads]
        await gallery.insert_many(records)
        return [record.id for record in records]

    @app.get("/api/images")
    async def list_images():
        return {"ids": gallery.ids, "count": len(gallery)}

    @app.get("/api/images/{image_id}")
    async def get_image(image_id: int):
        record = gallery.get(image_id)
        if record is None:
            raise HTTPException(status_code=404, detail="Image not found")
        return record.to_document()

    @app.post("/upload")
    async def upload_images(request: Request, files: list[UploadFile] | None = File(default=None)):
        uploads: list[UploadFile] = files or []

        # Fallback parser for clients that post under non-standard field names
        # such as "files[]" or "file".
        if not uploads:
            form = await request.form()
            for key in ("files[]", "file", "image"):
                uploads.extend([item for item in form.getlist(key) if hasattr(item, "read")])

        if not uploads:
            raise HTTPException(status_code=400, detail="No files were uploaded")

        payloads: list[bytes] = []
        for upload in uploads:
            if upload.content_type is not None and not upload.content_type.startswith("image/"):
                continue
            payloads.append(await upload.read())

        if not payloads:
            raise HTTPException(status_code=400, detail="No valid image files found in upload")

        ids = await ingest(payloads)
        return {"status": "ok", "ids": ids}

    @app.post("/paste")
    async def paste_image(request: Request):
        payload = await request.body()
        if not payload:
            raise HTTPException(status_code=400, detail="Pasted image payload is empty")
        ids = await ingest([payload])
        return {"status": "ok", "id": ids[0]}

    @app.post("/delete/{image_id}")
    async def delete_image_route(image_id: int):
        if gallery.get(image_id) is None:
            raise HTTPException(status_code=404, detail="Image not found")
        await gallery.remove(image_id)
        return {"status": "ok"}

    @app.get("/export")
    async def export_route():
        return Response(
            content=export_all(gallery.order),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
        )

    @app.post("/import")
    async def import_route(file: UploadFile = File(...)):
        document = await file.read()
        order = await restore(gallery, document)
        clock.observe(max((record.id for record in order), default=0))
        return {"status": "ok", "count": len(order)}

    @app.get("/api/slots")
    async def slots_route():
        state = scheduler.state
        return {
            "running": scheduler.running,
            "active_index": state.active_index,
            "total": state.total,
            "slots": board.snapshot(),
        }

    @app.post("/rotation/start")
    async def start_rotation():
        return {"started": scheduler.start()}

    @app.post("/rotation/stop")
    async def stop_rotation():
        await scheduler.stop()
        return {"status": "ok"}

    return app
