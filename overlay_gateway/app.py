from __future__ import annotations

import functools
import io
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from PIL import Image
from pydantic import BaseModel, Field

from overlay_runner import LabelStyle, WorkerDispatcher, transform_image

from .models import Process, Webhook, WebhookEvent
from .orchestrator import OUTPUT_URL_PREFIX, BatchOrchestrator
from .repository import InMemoryRepository, NotFoundError, Repository
from .security import owner_dependency
from .webhook_notifier import WebhookNotifier

VERSION = "0.1.0"


@dataclass
class GatewayConfig:
    public_dir: Path = Path("public")
    batch_concurrency: int = 1
    # Transform settings
    transform_workers: Optional[int] = None
    transform_queue_size: Optional[int] = None
    ffmpeg_binary: str = "ffmpeg"
    transform_timeout: Optional[float] = None
    label_color: str = "red"
    label_font_scale: float = 0.05
    # Webhook settings
    webhook_timeout: Optional[float] = 10.0
    # Auth settings
    jwt_secret: str = "your-secret-key"
    jwt_algorithm: str = "HS256"
    # Server settings
    host: str = "0.0.0.0"
    port: int = 5000
    log_level: str = "INFO"

    def resolved_public_dir(self) -> Path:
        path = self.public_dir.resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def resolved_output_dir(self) -> Path:
        path = self.resolved_public_dir() / OUTPUT_URL_PREFIX.lstrip("/")
        path.mkdir(parents=True, exist_ok=True)
        return path

    def build_dispatcher(self) -> WorkerDispatcher:
        transform = functools.partial(
            transform_image,
            ffmpeg_binary=self.ffmpeg_binary,
            style=LabelStyle(color=self.label_color, font_scale=self.label_font_scale),
            timeout=self.transform_timeout,
        )
        return WorkerDispatcher(
            workers=self.transform_workers,
            transform=transform,
            queue_size=self.transform_queue_size,
        )


@dataclass
class GatewayState:
    config: GatewayConfig
    repository: Repository
    orchestrator: BatchOrchestrator
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ProcessResponse(BaseModel):
    id: int
    createdById: int
    imageAmount: int
    outputUrl: str
    status: str
    createdAt: datetime
    finishedProcessingAt: Optional[datetime] = None
    imageUrls: List[str] = []
    error: Optional[str] = None

    @classmethod
    def from_record(cls, process: Process) -> "ProcessResponse":
        return cls(
            id=process.id,
            createdById=process.created_by_id,
            imageAmount=process.image_amount,
            outputUrl=process.output_url,
            status=process.status,
            createdAt=process.created_at,
            finishedProcessingAt=process.finished_processing_at,
            imageUrls=process.image_urls,
            error=process.error,
        )


class WebhookPayload(BaseModel):
    label: str = Field(..., min_length=1)
    url: str = Field(..., min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    requestConfig: Optional[Dict[str, Any]] = None


class WebhookResponse(BaseModel):
    id: int
    ownerId: int
    label: str
    url: str
    method: str
    requestConfig: Optional[Dict[str, Any]] = None
    createdAt: datetime

    @classmethod
    def from_record(cls, webhook: Webhook) -> "WebhookResponse":
        return cls(
            id=webhook.id,
            ownerId=webhook.owner_id,
            label=webhook.label,
            url=webhook.url,
            method=webhook.method,
            requestConfig=webhook.request_config,
            createdAt=webhook.created_at,
        )


class WebhookEventResponse(BaseModel):
    id: int
    webhookId: int
    processId: int
    request: Dict[str, Any]
    response: Any = None
    responseStatus: int
    createdAt: datetime

    @classmethod
    def from_record(cls, event: WebhookEvent) -> "WebhookEventResponse":
        return cls(
            id=event.id,
            webhookId=event.webhook_id,
            processId=event.process_id,
            request=event.request,
            response=event.response,
            responseStatus=event.response_status,
            createdAt=event.created_at,
        )


def _ensure_image(data: bytes, filename: Optional[str]) -> None:
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.verify()
    except Exception as exc:  # noqa: BLE001
        raise HTTPException(status_code=400, detail=f"{filename or 'upload'} is not a valid image") from exc


def create_app(
    config: Optional[GatewayConfig] = None,
    repository: Optional[Repository] = None,
    dispatcher: Optional[WorkerDispatcher] = None,
) -> FastAPI:
    cfg = config or GatewayConfig()
    repo = repository or InMemoryRepository()
    orchestrator = BatchOrchestrator(
        repository=repo,
        dispatcher=dispatcher or cfg.build_dispatcher(),
        notifier=WebhookNotifier(repo, timeout=cfg.webhook_timeout),
        public_dir=cfg.resolved_public_dir(),
        concurrency=cfg.batch_concurrency,
    )
    state = GatewayState(config=cfg, repository=repo, orchestrator=orchestrator)
    get_owner_id = owner_dependency(cfg.jwt_secret, cfg.jwt_algorithm)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN001
        await orchestrator.start()
        try:
            yield
        finally:
            await orchestrator.stop()

    app = FastAPI(title="Image Overlay Gateway", version=VERSION, lifespan=lifespan)
    app.mount(
        OUTPUT_URL_PREFIX,
        StaticFiles(directory=str(cfg.resolved_output_dir())),
        name="output",
    )

    def get_state() -> GatewayState:
        return state

    def _owned_process(state: GatewayState, process_id: int, owner_id: int) -> Process:
        try:
            process = state.repository.get_process(process_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="process not found")
        if process.created_by_id != owner_id:
            raise HTTPException(status_code=404, detail="process not found")
        return process

    def _owned_webhook(state: GatewayState, webhook_id: int, owner_id: int) -> Webhook:
        try:
            webhook = state.repository.get_webhook(webhook_id)
        except NotFoundError:
            raise HTTPException(status_code=404, detail="webhook not found")
        if webhook.owner_id != owner_id:
            raise HTTPException(status_code=404, detail="webhook not found")
        return webhook

    @app.post("/api/process", response_model=ProcessResponse, status_code=202)
    async def submit_process(
        request: Request,
        images: Optional[List[UploadFile]] = File(None),
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> ProcessResponse:
        blobs: List[bytes] = []
        for upload in images or []:
            data = await upload.read()
            _ensure_image(data, upload.filename)
            blobs.append(data)
        base_url = str(request.base_url).rstrip("/")
        process = await state.orchestrator.submit(owner_id, blobs, base_url=base_url)
        return ProcessResponse.from_record(process)

    @app.get("/api/process", response_model=List[ProcessResponse])
    async def list_processes(
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> List[ProcessResponse]:
        return [ProcessResponse.from_record(p) for p in state.repository.list_processes(owner_id)]

    @app.get("/api/process/{process_id}", response_model=ProcessResponse)
    async def get_process(
        process_id: int,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> ProcessResponse:
        return ProcessResponse.from_record(_owned_process(state, process_id, owner_id))

    @app.post("/api/webhook", response_model=WebhookResponse, status_code=201)
    async def create_webhook(
        body: WebhookPayload,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> WebhookResponse:
        webhook = state.repository.create_webhook(
            owner_id=owner_id,
            label=body.label,
            url=body.url,
            method=body.method,
            request_config=body.requestConfig,
        )
        return WebhookResponse.from_record(webhook)

    @app.get("/api/webhook", response_model=List[WebhookResponse])
    async def list_webhooks(
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> List[WebhookResponse]:
        return [WebhookResponse.from_record(w) for w in state.repository.list_webhooks(owner_id)]

    @app.get("/api/webhook/{webhook_id}", response_model=WebhookResponse)
    async def get_webhook(
        webhook_id: int,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> WebhookResponse:
        return WebhookResponse.from_record(_owned_webhook(state, webhook_id, owner_id))

    @app.api_route("/api/webhook/{webhook_id}", methods=["PUT", "PATCH"], response_model=WebhookResponse)
    async def update_webhook(
        webhook_id: int,
        body: WebhookPayload,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> WebhookResponse:
        _owned_webhook(state, webhook_id, owner_id)
        webhook = state.repository.update_webhook(
            webhook_id,
            label=body.label,
            url=body.url,
            method=body.method,
            request_config=body.requestConfig,
        )
        return WebhookResponse.from_record(webhook)

    @app.delete("/api/webhook/{webhook_id}")
    async def delete_webhook(
        webhook_id: int,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> JSONResponse:
        _owned_webhook(state, webhook_id, owner_id)
        state.repository.delete_webhook(webhook_id)
        return JSONResponse({"id": webhook_id, "status": "deleted"})

    @app.get("/api/webhook/{webhook_id}/events", response_model=List[WebhookEventResponse])
    async def list_webhook_events(
        webhook_id: int,
        owner_id: int = Depends(get_owner_id),
        state: GatewayState = Depends(get_state),
    ) -> List[WebhookEventResponse]:
        _owned_webhook(state, webhook_id, owner_id)
        return [WebhookEventResponse.from_record(e) for e in state.repository.list_webhook_events(webhook_id)]

    @app.get("/api/ping")
    async def ping() -> PlainTextResponse:
        return PlainTextResponse("pong")

    @app.get("/health")
    async def health_check(state: GatewayState = Depends(get_state)) -> JSONResponse:
        """Report queue depth, worker liveness and process counts."""
        workers = state.orchestrator.workers
        workers_alive = sum(1 for worker in workers if not worker.done())
        status = "healthy" if workers_alive > 0 else "unhealthy"
        response = {
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
            "started_at": state.started_at.isoformat(),
            "queue": {
                "size": state.orchestrator.queue.qsize(),
                "processes": state.repository.count_processes(),
            },
            "workers": {
                "total": len(workers),
                "alive": workers_alive,
                "configured_concurrency": state.config.batch_concurrency,
                "transform_workers": state.orchestrator.dispatcher.workers,
            },
        }
        return JSONResponse(content=response, status_code=200 if status == "healthy" else 503)

    return app
