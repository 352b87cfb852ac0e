from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import os

# Load environment variables from a .env file at repo root (without extra dependencies)
def _load_env_file():
    root = os.getcwd()
    env_path = os.path.join(root, '.env')
    if not os.path.exists(env_path):
        return
    with open(env_path, 'r', encoding='utf-8') as f:
        for line in f:
            s = line.strip()
            if not s or s.startswith('#') or '=' not in s:
                continue
            key, val = s.split('=', 1)
            key = key.strip()
            val = val.strip().strip('"').strip("'")
            if key and (key not in os.environ):
                os.environ[key] = val

_load_env_file()

# Centralized logging setup
from utils.logger import setup_logging, RequestContextLogMiddleware  # noqa: E402

setup_logging()

from routers.webhook import router as webhook_router  # noqa: E402
from routers.health import router as health_router  # noqa: E402

app = FastAPI(title="SheetDrop")

# Production-safe error responses
from fastapi import Request, HTTPException  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402

def _is_production() -> bool:
    return (os.getenv("ENV") or os.getenv("APP_ENV") or "").lower() == "production"

def _safe_message(status_code: int) -> str:
    mapping = {
        400: "Invalid request.",
        404: "Not found.",
        405: "Method not allowed.",
        413: "Request too large.",
        415: "Unsupported request.",
        422: "Invalid request.",
        500: "Something went wrong. Please try again.",
        502: "Temporary service issue. Please try again.",
        503: "Service unavailable. Please try again.",
    }
    return mapping.get(int(status_code or 500), "Something went wrong. Please try again.")

@app.exception_handler(HTTPException)
async def http_exception_sanitizer(request: Request, exc: HTTPException):
    if _is_production():
        return JSONResponse(status_code=exc.status_code, content={"status": "error", "message": _safe_message(exc.status_code)})
    detail = str(exc.detail) if getattr(exc, "detail", None) else _safe_message(exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"status": "error", "message": detail})

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=422, content={"status": "error", "message": _safe_message(422)})

@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Reached only on startup-type failures (e.g. invalid configuration) raised inside a route dependency
    logging.getLogger("backend").exception("Unhandled error")
    message = _safe_message(500) if _is_production() else f"{_safe_message(500)} ({type(exc).__name__})"
    return JSONResponse(status_code=500, content={"status": "error", "message": message})

# Forms are posted cross-origin from static sites
_raw_origins = os.getenv("CORS_ALLOWED_ORIGINS") or ""
_allow_origins = [o.strip() for o in _raw_origins.split(",") if o.strip()] or ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allow_origins,
    allow_credentials=False,
    allow_methods=["POST", "GET", "OPTIONS"],
    allow_headers=["*"],
)

# Request/response logging middleware
app.add_middleware(RequestContextLogMiddleware)

app.include_router(webhook_router)
app.include_router(health_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
