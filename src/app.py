"""Raisedash Forms Service - FastAPI server for marketing site form submissions."""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.shared.config.settings import load_settings
from src.shared.forms.dependencies import get_rate_limiter
from src.shared.forms.errors import SubmissionError
from src.shared.forms.pipeline import CaptchaPolicy, captcha_policy
from src.shared.forms.routes import router as forms_router
from src.shared.rate_limit.rate_limiter import RateLimitSweeper
from src.shared.turnstile.turnstile import validate_turnstile_config

settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

ALLOWED_ORIGINS = list(settings.cors_allowed_origins)

app = FastAPI(
    title="Raisedash Forms Service",
    description="Verification, rate limiting and operator notifications for marketing site forms",
    version="0.1.0"
)
app.state.sweeper = None


@app.on_event("startup")
async def startup_event():
    # Make the CAPTCHA policy an explicit, logged decision
    policy = captcha_policy(settings)
    if policy is CaptchaPolicy.DISABLED:
        logging.warning("Turnstile verification DISABLED: TURNSTILE_SECRET_KEY is not set")
    elif policy is CaptchaPolicy.MISCONFIGURED:
        logging.error("TURNSTILE_ENFORCE is set but TURNSTILE_SECRET_KEY is missing; submissions will fail")
    else:
        logging.info("Turnstile verification enabled")

    if not settings.telegram_configured:
        logging.error("TELEGRAM_BOT_TOKEN / TELEGRAM_CHAT_ID not set; form notifications will fail")

    try:
        limiter = get_rate_limiter()
        sweeper = RateLimitSweeper(limiter)
        sweeper.start()
        app.state.sweeper = sweeper
        logging.info(
            f"Rate limiting: {limiter.max_requests} requests per {limiter.window_seconds}s per identity"
        )
    except Exception as e:
        # Log error but don't crash the app; the limiter is rebuilt on first request
        logging.error(f"Rate limiter initialization error on startup: {str(e)}")


@app.on_event("shutdown")
async def shutdown_event():
    sweeper = app.state.sweeper
    if sweeper is not None:
        sweeper.stop()
        app.state.sweeper = None


app.include_router(forms_router)

# CORS configuration - must be added before exception handlers
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


def _cors_headers(request: Request) -> dict:
    """CORS headers for error responses built outside the middleware."""
    headers = {}
    origin = request.headers.get("origin")
    if origin in ALLOWED_ORIGINS:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Access-Control-Allow-Credentials"] = "true"
        headers["Access-Control-Allow-Methods"] = "*"
        headers["Access-Control-Allow-Headers"] = "*"
    return headers


# Global exception handlers to ensure CORS headers are always added
@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError):
    """Turn pipeline errors into the {success, error, code} contract."""
    if exc.status_code >= 500:
        # Internal message goes to the logs only; the caller gets the generic one
        logging.error(f"{request.url.path} failed ({exc.code}): {str(exc)}")
    else:
        logging.info(f"{request.url.path} rejected ({exc.code}): {exc.error}")

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_content(),
        headers=_cors_headers(request)
    )


@app.exception_handler(StarletteHTTPException)
async def starlette_http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Ensure CORS headers are added to Starlette HTTP exceptions."""
    headers = _cors_headers(request)
    if exc.headers:
        headers.update(exc.headers)

    if exc.status_code == 405:
        content = {"success": False, "error": "Method not allowed"}
    elif isinstance(exc.detail, dict):
        content = exc.detail
    else:
        content = {"success": False, "error": str(exc.detail)}

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=headers
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies get the same 400 contract as missing fields."""
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        if loc:
            fields.append(".".join(loc))

    content = {"success": False, "error": "Invalid request body", "code": "VALIDATION_ERROR"}
    if fields:
        content["invalidFields"] = fields
    return JSONResponse(
        status_code=400,
        content=content,
        headers=_cors_headers(request)
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Ensure CORS headers are added to all exceptions."""
    logging.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "An unexpected error occurred", "code": "INTERNAL_ERROR"},
        headers=_cors_headers(request)
    )


@app.get("/")
async def root():
    return {"message": "Raisedash Forms Service is running", "status": "ok"}


@app.get("/health")
async def health():
    """Report which integrations are configured, never their values."""
    current = load_settings()
    _, turnstile_missing = validate_turnstile_config(current)
    return {
        "status": "healthy",
        "turnstile": captcha_policy(current).value,
        "turnstile_missing": turnstile_missing,
        "telegram": current.telegram_configured,
        "workos": current.workos_configured,
        "rate_limit_backend": current.rate_limit_backend,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
