"""HTTP surface: queue chat, transaction and goal messages and read results."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from .auth import TokenVerifier
from .constants import CHAT_MESSAGE_RECEIVED, GOAL_INPUT_RECEIVED, TRANSACTION_INPUT_RECEIVED
from .contracts import (
    ChatMessageReceived,
    GoalInputReceived,
    RunStatus,
    TransactionInputReceived,
    WorkflowEvent,
)
from .dispatch import WorkflowDispatcher
from .errors import AuthenticationError
from .execute import EventExecutor
from .services import Services
from .workflows import build_dispatcher

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)

_RUN_HTTP_STATUS = {
    RunStatus.COMPLETED: 200,
    RunStatus.AWAITING_INPUT: 200,
    RunStatus.RUNNING: 202,
    RunStatus.FAILED: 500,
}


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")


class ChatRequest(_Body):
    message: str = Field(min_length=1)
    chat_id: Optional[str] = Field(default=None, alias="chatId")


class TransactionRequest(_Body):
    text: str = Field(min_length=1)
    source: str = "text"


class GoalRequest(_Body):
    text: str = Field(min_length=1)


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_dispatcher(request: Request) -> WorkflowDispatcher:
    return request.app.state.dispatcher


async def current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> str:
    """Resolve the caller's user id from the bearer token."""
    if credentials is None:
        raise HTTPException(
            status_code=401,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    verifier: TokenVerifier = request.app.state.verifier
    try:
        return verifier.verify_token(credentials.credentials)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=401, detail=str(e), headers={"WWW-Authenticate": "Bearer"}
        ) from e


def _check_owner(body: _Body, user_id: str) -> None:
    if body.user_id is not None and body.user_id != user_id:
        raise HTTPException(status_code=403, detail="userId does not match the token subject")


def _new_id() -> str:
    return uuid.uuid4().hex


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the FastAPI app around ``services`` (from configuration if omitted)."""
    services = services or Services.from_config()
    dispatcher = build_dispatcher(services)

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await services.start()
        worker: Optional[asyncio.Task] = None
        if services.config.engine.embedded_worker:
            worker = asyncio.create_task(EventExecutor(dispatcher).start())
            logger.info("Embedded worker started")
        try:
            yield
        finally:
            if worker is not None:
                worker.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await worker
            await services.close()

    app = FastAPI(title="arthagent", lifespan=lifespan)
    app.state.services = services
    app.state.dispatcher = dispatcher
    app.state.verifier = TokenVerifier(services.config.auth)

    @app.post("/chat", status_code=202)
    async def post_chat(
        body: ChatRequest,
        user_id: str = Depends(current_user),
        services: Services = Depends(get_services),
        dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
    ) -> Dict[str, Any]:
        _check_owner(body, user_id)
        if body.chat_id is not None:
            conversation = await services.store.get_conversation(body.chat_id)
            if conversation is not None and conversation.user_id != user_id:
                raise HTTPException(status_code=403, detail="Conversation belongs to another user")
        message_id = _new_id()
        chat_id = body.chat_id or _new_id()
        event = WorkflowEvent.create(
            CHAT_MESSAGE_RECEIVED,
            ChatMessageReceived(
                user_id=user_id, message_id=message_id, chat_id=chat_id, text=body.message
            ),
        )
        await dispatcher.publish(event)
        return {"messageId": message_id, "chatId": chat_id, "status": "queued"}

    @app.get("/chat")
    async def get_chat(
        chat_id: Optional[str] = Query(default=None, alias="chatId"),
        user_id: str = Depends(current_user),
        services: Services = Depends(get_services),
    ) -> Dict[str, Any]:
        if chat_id is None:
            chats = await services.store.list_conversations(user_id)
            return {"chats": [c.model_dump(mode="json") for c in chats]}
        conversation = await services.store.get_conversation(chat_id)
        if conversation is None:
            return {"chatId": chat_id, "messages": []}
        if conversation.user_id != user_id:
            raise HTTPException(status_code=403, detail="Conversation belongs to another user")
        return {
            "chatId": chat_id,
            "title": conversation.title,
            "messages": [m.model_dump(mode="json") for m in conversation.messages],
        }

    @app.get("/chat/runs/{message_id}")
    async def get_run_status(
        message_id: str,
        event_type: str = Query(default=CHAT_MESSAGE_RECEIVED, alias="eventType"),
        user_id: str = Depends(current_user),
        dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
    ) -> JSONResponse:
        run = await dispatcher.get_run(f"{event_type}:{message_id}")
        if run is None or run.event.get("data", {}).get("userId") != user_id:
            raise HTTPException(status_code=404, detail="Run not found")
        result = run.result or {}
        body = {
            "messageId": message_id,
            "status": run.status.value,
            "reply": result.get("reply"),
            "agents": result.get("agents", []),
            "data": result.get("data", {}),
            "error": run.error,
            "steps": [{"name": s.step_name, "status": s.status} for s in run.steps],
        }
        return JSONResponse(status_code=_RUN_HTTP_STATUS[run.status], content=body)

    @app.post("/transactions", status_code=202)
    async def post_transactions(
        body: TransactionRequest,
        user_id: str = Depends(current_user),
        dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
    ) -> Dict[str, Any]:
        _check_owner(body, user_id)
        message_id = _new_id()
        event = WorkflowEvent.create(
            TRANSACTION_INPUT_RECEIVED,
            TransactionInputReceived(
                user_id=user_id, message_id=message_id, text=body.text, source=body.source
            ),
        )
        await dispatcher.publish(event)
        return {"messageId": message_id, "status": "queued"}

    @app.post("/goals", status_code=202)
    async def post_goals(
        body: GoalRequest,
        user_id: str = Depends(current_user),
        dispatcher: WorkflowDispatcher = Depends(get_dispatcher),
    ) -> Dict[str, Any]:
        _check_owner(body, user_id)
        message_id = _new_id()
        event = WorkflowEvent.create(
            GOAL_INPUT_RECEIVED,
            GoalInputReceived(user_id=user_id, message_id=message_id, text=body.text),
        )
        await dispatcher.publish(event)
        return {"messageId": message_id, "status": "queued"}

    return app
