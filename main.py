import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from config import get_settings
from contact_store import ContactStore
from db_models import IdentifyRequest, FinalResponse, AddContactRequest
from db_setup import init_db, get_db_connection
from errors import InvalidRequest, PersistenceFailure
from reconciler import reconcile, add_contact as seed_contact

settings = get_settings()

structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
        if settings.log_format == "json"
        else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, settings.log_level)),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("Contact store ready", database_path=settings.database_path)
    yield


app = FastAPI(
    title=settings.app_title,
    version="1.0.0",
    lifespan=lifespan,
)


def get_store():
    conn = get_db_connection()
    try:
        yield ContactStore(conn)
    finally:
        conn.close()


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


@app.exception_handler(PersistenceFailure)
async def persistence_failure_handler(request: Request, exc: PersistenceFailure):
    logger.error("Contact store failure", path=request.url.path, error=exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": "Internal server error", "code": exc.code})


@app.get("/")
async def root():
    return {"message": "Bitespeed API is up"}


@app.get("/identify")
async def identify_usage():
    return {"message": "Use POST /identify with a JSON body containing email and/or phoneNumber."}


def require_identifier(request: IdentifyRequest) -> IdentifyRequest:
    # resolved before get_store, so an empty observation never opens a connection
    if request.email is None and request.phoneNumber is None:
        raise InvalidRequest()
    return request


@app.post("/identify", response_model=FinalResponse)
def identify(
    request: IdentifyRequest = Depends(require_identifier),
    store: ContactStore = Depends(get_store),
):
    return FinalResponse(contact=reconcile(store, request.email, request.phoneNumber))


@app.post("/add-contact")
def add_contact(request: AddContactRequest, store: ContactStore = Depends(get_store)):
    """Add a new contact to the database with all fields"""
    contact = seed_contact(
        store,
        email=request.email,
        phone=request.phoneNumber,
        link_precedence=request.linkPrecedence,
        linked_id=request.linkedId,
        contact_id=request.id,
        created_at=request.createdAt,
    )
    return {"message": "Contact added successfully", "contact_id": contact.id}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
