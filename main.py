import logging
import math
import secrets
from typing import Literal, Optional, Set

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_admin_password, get_admin_username, get_cors_origins, get_port
from database import db, ensure_indexes
from errors import FeedbackError, StoreUnavailable, SubmissionInvalid
from logging_config import add_request_id_middleware, configure_logging
from schemas import AdminLoginRequest, AdminLoginResponse, AnalyticsData, ContactUpdate, FeedbackCreate
from storage import FeedbackStore
from validation import first_error

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Visit Feedback API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
add_request_id_middleware(app)


# ----- Error responses -----

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    message, field = first_error(exc.errors())
    return JSONResponse(status_code=400, content={"message": message, "field": field})


@app.exception_handler(FeedbackError)
async def feedback_error_handler(request: Request, exc: FeedbackError):
    if exc.status_code >= 500:
        logger.error("Store unavailable: %s", exc.message)
        return JSONResponse(status_code=exc.status_code, content={"message": "Internal server error"})
    content = {"message": exc.message}
    if isinstance(exc, SubmissionInvalid):
        content["field"] = exc.field
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.get("/")
def read_root():
    return {"message": "Visit Feedback API"}


@app.get("/test")
def test_database():
    """Verify database connectivity and list collections"""
    response = {
        "backend": "Running",
        "database": "Not Available",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if db is None:
        return response

    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "Connected & Working"
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"Connected but Error: {str(e)[:80]}"
    return response


@app.on_event("startup")
def startup_event():
    # best-effort; reads still work without indexes
    if db is None:
        return
    try:
        ensure_indexes(db)
        FeedbackStore(db).migrate_legacy_documents()
    except PyMongoError:
        logger.exception("Startup database maintenance failed")


def get_storage() -> FeedbackStore:
    if db is None:
        raise StoreUnavailable()
    return FeedbackStore(db)


# ----- Admin Auth -----
# One account from configuration; tokens live for the life of the process.

_admin_tokens: Set[str] = set()


def _admin_identity() -> dict:
    return {"id": "admin", "username": get_admin_username(), "role": "admin"}


def _token_from_header(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    return authorization.replace("Bearer ", "").strip() or None


@app.post("/admin/login", response_model=AdminLoginResponse)
def admin_login(payload: AdminLoginRequest):
    # compare bytes; compare_digest rejects non-ASCII str
    username_ok = secrets.compare_digest(payload.username.encode(), get_admin_username().encode())
    password_ok = secrets.compare_digest(payload.password.encode(), get_admin_password().encode())
    if not (username_ok and password_ok):
        logger.warning("Failed admin login attempt")
        raise HTTPException(status_code=401, detail="Invalid credentials")

    token = secrets.token_urlsafe(32)
    _admin_tokens.add(token)
    logger.info("Admin logged in")
    return AdminLoginResponse(token=token, username=get_admin_username())


def get_current_admin(authorization: Optional[str] = Header(default=None, alias="Authorization")):
    token = _token_from_header(authorization)
    if token is None or token not in _admin_tokens:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return _admin_identity()


@app.post("/admin/logout")
def admin_logout(authorization: Optional[str] = Header(default=None, alias="Authorization"),
                 admin: dict = Depends(get_current_admin)):
    _admin_tokens.discard(_token_from_header(authorization))
    return {"message": "Logged out"}


@app.get("/admin/me")
def admin_me(authorization: Optional[str] = Header(default=None, alias="Authorization")):
    token = _token_from_header(authorization)
    return _admin_identity() if token in _admin_tokens else None


# ----- Feedback Endpoints -----

@app.post("/feedback", status_code=201, response_model=dict)
def submit_feedback(payload: FeedbackCreate, storage: FeedbackStore = Depends(get_storage)):
    return storage.create_feedback(payload)


@app.get("/feedback", response_model=dict)
def list_feedback(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    date: Optional[str] = Query(None, pattern=r"^\d{4}-\d{2}-\d{2}$"),
    rating: Optional[int] = Query(None, ge=1, le=5),
    admin: dict = Depends(get_current_admin),
    storage: FeedbackStore = Depends(get_storage),
):
    data, total = storage.get_feedback(page, limit, search=search, date=date, rating=rating)
    return {
        "data": data,
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit),
        },
    }


@app.patch("/feedback/{feedback_id}/contacted", response_model=dict)
def mark_contacted(
    feedback_id: str,
    payload: ContactUpdate,
    admin: dict = Depends(get_current_admin),
    storage: FeedbackStore = Depends(get_storage),
):
    return storage.mark_contacted(feedback_id, payload.contactedBy)


@app.get("/analytics", response_model=AnalyticsData)
def get_analytics(
    period: Literal["week", "month"] = "week",
    admin: dict = Depends(get_current_admin),
    storage: FeedbackStore = Depends(get_storage),
):
    return storage.get_analytics(period)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=get_port())
