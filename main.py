from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
from typing import List, Optional

import json as _json
import uuid as _uuid
from datetime import datetime as _dt, timezone as _tz

from config import APP_ENV, DEFAULT_USER_ID, DISPATCH_TIMEOUT_SECONDS, LLM_TIMEOUT_SECONDS

FATAL_MESSAGE = "Financial data currently unavailable. Please try again later."
# must outlast routing turn + dispatch + narration turn
CHAT_TIMEOUT_SECONDS = 2 * LLM_TIMEOUT_SECONDS + DISPATCH_TIMEOUT_SECONDS + 30

app = FastAPI(title="Market Chat API")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    body = None
    try:
        body = (await request.body()).decode("utf-8", errors="replace")[:2000]
    except Exception:
        body = "<unreadable>"
    print(f"[VALIDATION_ERROR] path={request.url.path} method={request.method}")
    print(f"[VALIDATION_ERROR] errors={exc.errors()}")
    print(f"[VALIDATION_ERROR] body={body}")
    return JSONResponse(
        status_code=422,
        content={
            "detail": _json.loads(_json.dumps(exc.errors(), default=str)),
            "message": "Request validation failed. Check field names and types.",
            "request_id": str(_uuid.uuid4()),
            "as_of": _dt.now(_tz.utc).isoformat(),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

data_service = None
agent = None
_init_done = False


def _do_init():
    global data_service, agent, _init_done
    try:
        from config import COINGECKO_API_KEY, COMPANY_NAME
        from data.market_data_service import MarketDataService
        from data.chat_log_store import chat_log, company_info
        from agent.capabilities import build_default_registry, DispatchContext
        from agent.dispatcher import Dispatcher
        from agent.llm_client import build_language_model
        from agent.chat_agent import ChatAgent

        data_service = MarketDataService(coingecko_key=COINGECKO_API_KEY)
        registry = build_default_registry(COMPANY_NAME)
        dispatcher = Dispatcher(registry, DispatchContext(market=data_service, company_info=company_info))
        agent = ChatAgent(build_language_model(), registry, dispatcher, chat_log=chat_log)
        _init_done = True
        print(f"[INIT] All services initialized successfully ({len(registry)} capabilities)")
    except Exception as e:
        print(f"[INIT] ERROR during initialization: {e}")
        import traceback
        traceback.print_exc()
        _init_done = True


@app.on_event("startup")
async def startup_event():
    import threading
    threading.Thread(target=_do_init, daemon=True).start()


@app.on_event("shutdown")
async def shutdown_event():
    if data_service is not None:
        await data_service.aclose()


# ============================================================
# API Routes
# ============================================================


async def _wait_for_init():
    import asyncio
    for _ in range(60):
        if _init_done:
            return
        await asyncio.sleep(0.5)
    raise HTTPException(status_code=503, detail="Server is still starting up. Please try again in a moment.")


def _resp_log(req_id: str, status: int, resp_type: str, resp: dict):
    resp_bytes = len(_json.dumps(resp, default=str).encode("utf-8"))
    print(f"[RESP] id={req_id} status={status} type={resp_type} bytes={resp_bytes}")


def _fatal(req_id: str, error: Exception) -> JSONResponse:
    content = {"error": FATAL_MESSAGE}
    if APP_ENV == "development":
        content["details"] = str(error)
    _resp_log(req_id, 500, "error", content)
    return JSONResponse(status_code=500, content=content)


def _store_error(req_id: str, message: str, error: Exception = None) -> JSONResponse:
    content = {"error": message}
    if error is not None and APP_ENV == "development":
        content["details"] = str(error)
    _resp_log(req_id, 500, "error", content)
    return JSONResponse(status_code=500, content=content)


@app.get("/")
async def root():
    """Health check. Visit this URL to confirm the backend is running."""
    return {"status": "running", "message": "Market Chat API is live"}


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "init_complete": _init_done,
        "agent_loaded": agent is not None,
        "data_service_loaded": data_service is not None,
    }


class ChatMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str
    content: Optional[str] = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage]
    userId: Optional[str] = None


class ChatLogRequest(BaseModel):
    userId: str
    messages: List[dict] = []


class FeedbackRequest(BaseModel):
    userId: str = DEFAULT_USER_ID
    messageId: Optional[str] = None
    action: Optional[str] = None
    reportMessage: Optional[str] = None


@app.post("/api/chat")
async def chat(body: ChatRequest):
    import asyncio
    import time as _time
    t0 = _time.time()
    req_id = str(_uuid.uuid4())
    user_id = body.userId or DEFAULT_USER_ID
    print(f"[REQ] id={req_id} path=/api/chat messages={len(body.messages)} user={user_id}")

    try:
        await _wait_for_init()
        if agent is None:
            raise RuntimeError("Chat agent failed to initialize")
        messages = [{"role": m.role, "content": m.content or ""} for m in body.messages]
        result = await asyncio.wait_for(
            agent.handle_chat(messages, user_id=user_id),
            timeout=CHAT_TIMEOUT_SECONDS,
        )
    except Exception as e:
        import traceback
        print(f"[API] request_id={req_id} status=error error={type(e).__name__}: {e}")
        traceback.print_exc()
        return _fatal(req_id, e)

    print(f"[API] request_id={req_id} function={result.get('functionName')} elapsed={_time.time() - t0:.1f}s")
    _resp_log(req_id, 200, "ok", result)
    return JSONResponse(content=_json.loads(_json.dumps(result, default=str)))


@app.post("/api/chatlog")
async def save_chat_log(body: ChatLogRequest):
    from data.chat_log_store import chat_log
    req_id = str(_uuid.uuid4())
    print(f"[REQ] id={req_id} path=/api/chatlog user={body.userId} messages={len(body.messages)}")

    store = chat_log.acquire()
    if store is None:
        return _store_error(req_id, "Failed to save chat log")
    try:
        store.append_messages(body.userId, body.messages)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except OSError as e:
        return _store_error(req_id, "Failed to save chat log", e)
    return {"message": "Chat log updated successfully"}


@app.put("/api/feedback")
async def update_feedback(body: FeedbackRequest):
    from data.chat_log_store import chat_log, FEEDBACK_ACTIONS
    req_id = str(_uuid.uuid4())
    print(f"[REQ] id={req_id} path=/api/feedback user={body.userId} message={body.messageId} action={body.action}")

    if body.action not in FEEDBACK_ACTIONS:
        return JSONResponse(status_code=400, content={"error": "Invalid action"})

    store = chat_log.acquire()
    if store is None:
        return _store_error(req_id, "Failed to update feedback")
    try:
        updated = store.set_feedback(body.userId, body.messageId, body.action, body.reportMessage)
    except OSError as e:
        return _store_error(req_id, "Failed to update feedback", e)
    if not updated:
        return JSONResponse(status_code=404, content={"error": "Message not found or feedback not updated"})
    return {"message": "Feedback updated successfully", "messageId": body.messageId}
