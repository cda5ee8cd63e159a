from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from functools import lru_cache
from typing import Annotated, Any

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError

from docchat.chat import ChatSession, ChatTurn, render_answer
from docchat.config import get_settings
from docchat.logs import configure_logging
from docchat.services.rag import OrchestratorError, RagService
from docchat.services.rag.errors import RagError

READY_MESSAGE = "All documents loaded successfully."


class ChatRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str


@lru_cache
def get_rag_service() -> RagService:
    return RagService.from_settings(get_settings())


@lru_cache
def get_chat_session() -> ChatSession:
    return ChatSession()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_logging(settings.log_level)

    if settings.rag_build_on_startup:
        service = get_rag_service()
        # An InitializationError here aborts startup before any request is served.
        await run_in_threadpool(service.initialize)
        await get_chat_session().publish(ChatTurn(speaker="assistant", text=READY_MESSAGE))

    yield


app = FastAPI(title="docchat", version="0.1.0", lifespan=lifespan)


async def _answer_and_broadcast(service: RagService, session: ChatSession, question: str) -> None:
    try:
        answer = await run_in_threadpool(service.ask, question)
    except OrchestratorError as exc:
        logger.error("Question failed: {}", exc)
        await session.publish(
            ChatTurn(
                speaker="assistant",
                text=f"Sorry, the question could not be answered: {exc}",
                status="error",
            )
        )
        return

    await session.publish(ChatTurn(speaker="assistant", text=render_answer(answer)))


def _rebuild_index(service: RagService) -> None:
    try:
        service.rebuild()
    except (RagError, ValueError, OSError) as exc:
        logger.error("Background index rebuild failed: {}", exc)


@app.get("/health")
def health(service: Annotated[RagService, Depends(get_rag_service)]) -> dict[str, Any]:
    return {
        "status": "ok",
        "index": service.status.value,
        "fragments": service.fragment_count,
    }


@app.get("/chat")
def get_chat(session: Annotated[ChatSession, Depends(get_chat_session)]) -> list[dict[str, str]]:
    return [turn.to_dict() for turn in session.history]


@app.post("/chat")
async def post_chat(
    request: Request,
    background_tasks: BackgroundTasks,
    service: Annotated[RagService, Depends(get_rag_service)],
    session: Annotated[ChatSession, Depends(get_chat_session)],
) -> dict[str, str]:
    try:
        chat_request = ChatRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail="Message is required.") from exc

    message = chat_request.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message is required.")
    if not service.is_ready:
        raise HTTPException(
            status_code=503,
            detail=f"Document index is not ready (status={service.status.value})",
        )

    await session.publish(ChatTurn(speaker="user", text=message))
    background_tasks.add_task(_answer_and_broadcast, service, session, message)
    return {"detail": "Message received and broadcasted."}


@app.websocket("/ws")
async def chat_listener(
    websocket: WebSocket,
    session: Annotated[ChatSession, Depends(get_chat_session)],
) -> None:
    await websocket.accept()
    session.connect(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Chat listener disconnected")
    finally:
        session.disconnect(websocket)


@app.get("/files")
def list_files(service: Annotated[RagService, Depends(get_rag_service)]) -> list[dict[str, str]]:
    corpus_dir = service.corpus_dir
    if not corpus_dir.is_dir():
        raise HTTPException(status_code=404, detail=f"Corpus directory not found: {corpus_dir}")

    files: list[dict[str, str]] = []
    for path in sorted(corpus_dir.iterdir(), key=lambda entry: entry.name):
        stat = path.stat()
        created = getattr(stat, "st_birthtime", stat.st_ctime)
        files.append(
            {
                "name": path.name,
                "extension": path.suffix,
                "created_at": datetime.fromtimestamp(created, tz=timezone.utc).isoformat(),
            }
        )
    return files


@app.post("/index/rebuild")
def rebuild_index(
    background_tasks: BackgroundTasks,
    service: Annotated[RagService, Depends(get_rag_service)],
) -> JSONResponse:
    if not service.is_ready:
        raise HTTPException(
            status_code=503,
            detail=f"Document index is not ready (status={service.status.value})",
        )
    if service.rebuild_in_progress:
        return JSONResponse(status_code=409, content={"detail": "index rebuild already running"})

    background_tasks.add_task(_rebuild_index, service)
    return JSONResponse(status_code=202, content={"status": "accepted"})


def run() -> None:
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    uvicorn.run("docchat.main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
