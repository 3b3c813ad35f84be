"""FastAPI application exposing the orchestrator over HTTP and WebSocket."""
import json
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Body, Depends, FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from quonx.config import Settings, get_settings
from quonx.errors import InvalidRequestError, QuonxError
from quonx.models.schemas import (
    CreateConversationRequest,
    LoadModelRequest,
    ProcessRequest,
    UpdateContextRequest,
    WriteFileRequest,
)
from quonx.orchestrator import AgentOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def get_orchestrator(request: Request) -> AgentOrchestrator:
    return request.app.state.orchestrator


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or str(uuid.uuid4())


def _error_response(error: QuonxError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def _validation_message(errors) -> str:
    return "; ".join(f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in errors)


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[AgentOrchestrator] = None
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings, loaded from the environment when omitted
        orchestrator: Pre-built orchestrator, built from settings when omitted

    Returns:
        Configured application; the orchestrator lives on app.state
    """
    settings = settings or get_settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = FastAPI(
        title="Quonx Orchestration API",
        description="Multi-agent coding assistant with chat, code and reasoning agents",
        version="1.0.0"
    )
    app.state.settings = settings
    app.state.orchestrator = orchestrator or build_orchestrator(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_request_id(request: Request, call_next):
        request.state.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request.state.request_id
        return response

    @app.exception_handler(QuonxError)
    async def quonx_error_handler(request: Request, exc: QuonxError):
        exc.request_id = exc.request_id or _request_id(request)
        logger.warning(f"Request {exc.request_id} failed with {exc.error_code}: {exc.message}")
        return _error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = _validation_message(exc.errors())
        return _error_response(InvalidRequestError(f"Invalid request: {errors}", request_id=_request_id(request)))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error: {exc}", exc_info=True)
        return _error_response(QuonxError("Internal server error", request_id=_request_id(request)))

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on startup."""
        logger.info("Starting Quonx Orchestration API")
        logger.info(f"Environment: {settings.environment}")
        await app.state.orchestrator.initialize()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown."""
        logger.info("Shutting down Quonx Orchestration API")
        await app.state.orchestrator.shutdown()

    @app.get("/health")
    async def health_check(orchestrator: AgentOrchestrator = Depends(get_orchestrator)):
        """Health check endpoint."""
        health = await orchestrator.health()
        health["environment"] = settings.environment
        return health

    @app.get("/metrics")
    async def metrics(orchestrator: AgentOrchestrator = Depends(get_orchestrator)):
        return {"success": True, "agents": orchestrator.metrics()}

    @app.get("/models")
    async def list_models(orchestrator: AgentOrchestrator = Depends(get_orchestrator)):
        return {"success": True, **orchestrator.model_manager.list_models()}

    @app.post("/models/load")
    async def load_model(
        body: LoadModelRequest,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        model = orchestrator.model_manager.register_model(
            body.provider, body.model_name, model_id=body.model_id, base_url=body.base_url
        )
        return {"success": True, "model": model.describe()}

    @app.post("/conversations")
    async def create_conversation(
        body: Optional[CreateConversationRequest] = None,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        conversation_id = await orchestrator.create_conversation(body.context if body else {})
        return {"success": True, "conversation_id": conversation_id}

    @app.get("/conversations/{conversation_id}")
    async def get_conversation(
        conversation_id: str,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        conversation = await orchestrator.get_conversation(conversation_id)
        return {"success": True, "conversation": conversation.model_dump(mode="json")}

    @app.post("/process")
    async def process(
        body: ProcessRequest,
        request: Request,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        result = await orchestrator.process(
            body.input,
            conversation_id=body.conversation_id,
            context=body.context,
            workflow=body.workflow,
            models=body.models,
            request_id=_request_id(request)
        )
        return {"success": True, **result.model_dump(mode="json")}

    @app.post("/agents/{agent_type}")
    async def invoke_agent(
        agent_type: str,
        request: Request,
        body: Dict[str, Any] = Body(...),
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        result = await orchestrator.invoke_agent(agent_type, body, request_id=_request_id(request))
        return {"success": True, "result": result.model_dump(mode="json")}

    @app.post("/context/update")
    async def update_context(
        body: UpdateContextRequest,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        context = await orchestrator.update_context(body.conversation_id, body.context)
        return {"success": True, "conversation_id": body.conversation_id, "context": context}

    @app.get("/context/{conversation_id}")
    async def get_context(
        conversation_id: str,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        context = await orchestrator.get_context(conversation_id)
        return {"success": True, "conversation_id": conversation_id, "context": context}

    @app.get("/files")
    async def list_files(
        path: str = Query(default=""),
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        entries = orchestrator.file_store.list_directory(path)
        return {"success": True, "path": path, "entries": entries}

    @app.get("/files/content")
    async def read_file(
        path: str = Query(...),
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        content = await orchestrator.file_store.read(path)
        return {"success": True, "path": path, "content": content}

    @app.post("/files/content")
    async def write_file(
        body: WriteFileRequest,
        orchestrator: AgentOrchestrator = Depends(get_orchestrator)
    ):
        await orchestrator.file_store.write(body.path, body.content)
        return {"success": True, "path": body.path}

    @app.websocket("/ws/{conversation_id}")
    async def websocket_endpoint(websocket: WebSocket, conversation_id: str):
        """
        WebSocket endpoint for conversational use.

        Each text frame is a JSON object with "content" and optional
        "workflow", "context" and "models"; each is processed as one request.
        """
        orchestrator: AgentOrchestrator = websocket.app.state.orchestrator
        await websocket.accept()
        logger.info(f"WebSocket connection established for conversation: {conversation_id}")

        await websocket.send_json({
            "type": "system",
            "content": "Connected to Quonx. How can I help you today?",
            "conversation_id": conversation_id
        })

        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    message = {"content": data}
                if not isinstance(message, dict):
                    message = {"content": str(message)}

                content = message.get("content", "")
                if not content:
                    await websocket.send_json({
                        "type": "error",
                        "content": "Empty message received",
                        "conversation_id": conversation_id
                    })
                    continue

                try:
                    frame = ProcessRequest(
                        input=content,
                        conversation_id=conversation_id,
                        context=message.get("context") or {},
                        workflow=message.get("workflow") or "auto",
                        models=message.get("models") or {}
                    )
                    result = await orchestrator.process(
                        frame.input,
                        conversation_id=conversation_id,
                        context=frame.context,
                        workflow=frame.workflow,
                        models=frame.models
                    )
                except ValidationError as e:
                    error = InvalidRequestError(f"Invalid message: {_validation_message(e.errors())}")
                    await websocket.send_json({
                        "type": "error",
                        "content": error.message,
                        "conversation_id": conversation_id,
                        **error.to_dict()
                    })
                    continue
                except QuonxError as e:
                    await websocket.send_json({
                        "type": "error",
                        "content": e.message,
                        "conversation_id": conversation_id,
                        **e.to_dict()
                    })
                    continue

                await websocket.send_json({
                    "type": "agent_response",
                    "content": result.response,
                    "conversation_id": conversation_id,
                    "workflow": result.workflow,
                    "request_id": result.request_id,
                    "metadata": result.metadata.model_dump(mode="json")
                })
                logger.info(f"Sent response to {conversation_id}")

        except WebSocketDisconnect:
            logger.info(f"WebSocket disconnected for conversation: {conversation_id}")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(
        "quonx.main:app",
        host=_settings.server_host,
        port=_settings.server_port,
        reload=_settings.environment == "development"
    )
