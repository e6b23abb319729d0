from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.goals.definitions import ConfigurationError
from app.goals.router import router as goals_router
from app.log import get_logger

logger = get_logger("main")

app = FastAPI(title="FBA Goals", version="0.1.0")
app.include_router(goals_router)


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    logger.warning(f"Rejected goal configuration: {exc}", extra={"endpoint": request.url.path})
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.get("/")
async def root() -> dict:
    return {
        "status": "ok",
        "docs": "/docs",
        "health": "/health",
        "goals": {
            "list": "/api/goals",
            "detail": "/api/goals/{id}",
            "archive": "/api/goals/{id}/archive",
            "settle": "/api/goals/settle",
            "history": "/api/goals/history",
        },
    }


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
