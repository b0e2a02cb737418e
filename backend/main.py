from contextlib import asynccontextmanager
from datetime import datetime
import logging
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

import config
from database import init_db, SQLiteStorage
from engine import TaskEngine
from errors import InvalidInput, QuotaExceeded
from models import ParseResult, PatternImport, ProxyParseRequest, TaskParseRequest
from remote import AnthropicRemoteParser, Err, parse_remotely
from usage import UsageTracker

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    # Startup
    init_db()
    yield
    # Shutdown (nothing to do)

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

remote_parser = AnthropicRemoteParser(api_key=config.ANTHROPIC_API_KEY) if config.api_key_configured() else None
engine = TaskEngine(SQLiteStorage(), remote_parser, config.load_engine_config())

# Per client IP, in memory
proxy_usage = UsageTracker()


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


@app.post("/api/parse")
async def proxy_parse(parse_request: ProxyParseRequest, request: Request) -> dict:
    """Forward one parse/coach request to the model and return its normalized answer."""
    if not parse_request.input.strip():
        raise HTTPException(status_code=400, detail="Input required")

    ip = client_ip(request)
    if not proxy_usage.can_make_api_call(ip, config.PROXY_DAILY_LIMIT):
        raise HTTPException(
            status_code=429,
            detail="You have reached the daily limit. Try again tomorrow or upgrade to Pro.",
        )

    context = parse_request.context
    outcome = await parse_remotely(
        remote_parser,
        parse_request.input,
        parse_request.mode,
        parse_request.user_projects,
        {
            "timezone": context.timezone if context else "UTC",
            "current_date": (context.current_date if context else None) or datetime.now().astimezone().isoformat(),
        },
        engine.config.remote_timeout_seconds,
    )
    if isinstance(outcome, Err):
        logger.error(f"Proxy parse failed: {outcome.error}")
        if isinstance(outcome.error, QuotaExceeded):
            raise HTTPException(status_code=429, detail="AI service rate limit")
        raise HTTPException(status_code=502, detail="AI service error")

    proxy_usage.record_api_call(ip)

    payload = outcome.value
    if payload.mode == "coach":
        return {"tasks": [t.model_dump() for t in payload.tasks], "mode": "coach"}
    task = payload.tasks[0]
    return {
        "name": task.name,
        "project": task.project,
        "deadline": task.deadline,
        "chunks": [c.model_dump() for c in task.chunks],
        "mode": payload.mode,
    }


@app.post("/tasks/parse")
async def parse_task(parse_request: TaskParseRequest) -> ParseResult:
    """Parse input into a task, locally when possible."""
    try:
        return await engine.parse_task(
            parse_request.input,
            voice_duration_seconds=parse_request.voice_duration_seconds,
            force_cloud=parse_request.force_cloud,
            coach_mode=parse_request.coach_mode,
        )
    except InvalidInput as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/stats")
def get_stats() -> dict:
    return engine.get_stats()


@app.get("/patterns/export")
def export_patterns() -> dict:
    return engine.export_patterns()


@app.post("/patterns/import")
def import_patterns(data: PatternImport) -> dict:
    return engine.import_patterns(data)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
