import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.db import engine, Base

from app.models.user import User
from app.models.transaction import Transaction
from app.models.promotion import Promotion
from app.models.event import Event
from app.models.reset_token import ResetToken

from app.routes.auth import router as auth_router
from app.routes.events import router as events_router
from app.routes.promotions import router as promotions_router
from app.routes.transactions import router as transactions_router
from app.routes.users import router as users_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Points Ledger")

# ─── CORS ─────────────────────────────────────────────────────────
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)


@app.exception_handler(SQLAlchemyError)
def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception("storage fault", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": "Storage error", "code": "STORAGE_ERROR", "context": {}}},
    )


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(transactions_router)
app.include_router(promotions_router)
app.include_router(events_router)


@app.get("/")
def read_root():
    return {"message": "Points Ledger is running"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8001, reload=True)
