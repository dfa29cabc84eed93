import logging
import uuid
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings
from database import SessionLocal, init_db
from schemas import (
    CategoryIn,
    CategoryOut,
    MovementIn,
    MovementOut,
    MovementPage,
    MovementSummary,
)
from services import (
    CategoryService,
    MovementFilters,
    MovementService,
    MovementsError,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    try:
        import tomllib
    except Exception:
        return "unknown"
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
        return str(data.get("project", {}).get("version", "unknown"))
    except Exception:
        return "unknown"


APP_VERSION = _load_app_version()

app = FastAPI(title="Movements API", version=APP_VERSION)

STATUS_BY_KIND = {
    "NotFound": 404,
    "ValidationFailed": 400,
    "Conflict": 400,
    "Internal": 500,
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info(f"startup: version={APP_VERSION}")


@app.exception_handler(MovementsError)
async def movements_error_handler(request: Request, exc: MovementsError):
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"internal_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status_code, content={"detail": str(exc), "kind": exc.kind}
    )


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"store_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {exc}", "kind": "Internal"},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": jsonable_encoder(exc.errors()), "kind": "ValidationFailed"},
    )


def filters_from_query(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
) -> MovementFilters:
    return MovementFilters(
        start_date=start_date, end_date=end_date, category_id=category_id
    )


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    return CategoryService(db).list_all()


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def get_category(category_id: int, db: Session = Depends(get_db)):
    return CategoryService(db).get(category_id)


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    return CategoryService(db).create(data)


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, data: CategoryIn, db: Session = Depends(get_db)):
    return CategoryService(db).update(category_id, data)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: int, db: Session = Depends(get_db)):
    CategoryService(db).delete(category_id)
    return Response(status_code=204)


@app.get("/api/movements", response_model=MovementPage)
def list_movements(
    filters: MovementFilters = Depends(filters_from_query),
    page: int = Query(1),
    page_size: Optional[int] = Query(None, alias="pageSize"),
    db: Session = Depends(get_db),
):
    return MovementService(db).list(filters, page=page, page_size=page_size)


@app.get("/api/movements/summary", response_model=MovementSummary)
def movements_summary(
    filters: MovementFilters = Depends(filters_from_query),
    db: Session = Depends(get_db),
):
    return MovementService(db).summary(filters)


@app.get("/api/movements/category/{category}", response_model=list[MovementOut])
def movements_by_category(category: str, db: Session = Depends(get_db)):
    return MovementService(db).list_by_category_name(category)


@app.get("/api/movements/{movement_id:uuid}", response_model=MovementOut)
def get_movement(movement_id: uuid.UUID, db: Session = Depends(get_db)):
    return MovementService(db).get(movement_id)


@app.post("/api/movements", response_model=MovementOut, status_code=201)
def create_movement(data: MovementIn, db: Session = Depends(get_db)):
    return MovementService(db).create(data)


@app.put("/api/movements/{movement_id:uuid}", response_model=MovementOut)
def update_movement(
    movement_id: uuid.UUID, data: MovementIn, db: Session = Depends(get_db)
):
    return MovementService(db).update(movement_id, data)


@app.delete("/api/movements/{movement_id:uuid}", status_code=204)
def delete_movement(movement_id: uuid.UUID, db: Session = Depends(get_db)):
    MovementService(db).delete(movement_id)
    return Response(status_code=204)
