# ------------------ BLOC DE CONFIGURATION CENTRALE ------------------
from config import settings  # noqa: F401  (charge le .env)
from config.logging_config import setup_logging
import logging
# --------------------------------------------------------------------
setup_logging("kyc_service")

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kyc_service.database import init_db
from kyc_service.errors import KycError
from kyc_service.router import documents, selfie, users

# ───────────────────────────────────────────────
# 1) Initialisation de la base (tables) au démarrage
# ───────────────────────────────────────────────
init_db()

# ───────────────────────────────────────────────
# 2) Application FastAPI
# ───────────────────────────────────────────────
app = FastAPI(title="KYC Service - eKYC onboarding", version="1.0")


@app.exception_handler(KycError)
async def kyc_error_handler(request: Request, exc: KycError):
    if exc.status_code >= 500:
        logging.error(f"{request.method} {request.url.path} -> {exc.code}: {exc.message} {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # On ne renvoie jamais les entrées brutes (images en base64)
    errors = [
        {"field": ".".join(str(part) for part in error.get("loc", ()) if part != "body"), "message": error.get("msg")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={"error": "INVALID_REQUEST", "message": "Invalid request", "details": {"errors": errors}},
    )


@app.get("/health", tags=["Health"])
def health():
    return {"status": "ok"}


# Routes
app.include_router(users.router, tags=["Users"])
app.include_router(selfie.router, tags=["Selfie Steps"])
app.include_router(documents.router, tags=["Documents"])
