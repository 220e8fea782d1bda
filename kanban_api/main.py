import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .auth import get_current_user
from .config import API_VERSION, configure_logging
from .db import get_db, init_db
from .errors import KanbanError
from .models import Card, ColumnModel
from .ordering import OrderingEngine, column_locks
from .schemas import (
    CardIn,
    CardMove,
    CardOut,
    CardPatch,
    CardReorder,
    ColumnIn,
    ColumnIntegrity,
    ColumnOut,
    ColumnsPage,
    ErrorEnvelope,
    Health,
    Version,
)
from .storage import Storage
from .utils import normalize_card_fields

configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    yield


app = FastAPI(title="Kanban API", version=API_VERSION, lifespan=lifespan)


# === Helpers ===


def column_out(column: ColumnModel) -> ColumnOut:
    return ColumnOut(
        id=column.id,
        owner=column.owner,
        title=column.title,
        createdAt=column.created_at,
        updatedAt=column.updated_at,
    )


def card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        title=card.title,
        description=card.description,
        priority=card.priority,
        dueDate=card.due_date,
        column=card.column_id,
        owner=card.owner,
        order=card.order,
        createdAt=card.created_at,
        updatedAt=card.updated_at,
    )


def error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    envelope = ErrorEnvelope(code=code, message=message, details=details or {}, requestId=str(uuid.uuid4()))
    return JSONResponse(status_code=status_code, content={"error": envelope.model_dump()})


@app.exception_handler(KanbanError)
async def handle_kanban_error(request: Request, exc: KanbanError) -> JSONResponse:
    logger.warning("%s %s rejected: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.warning("%s %s rejected: invalid payload", request.method, request.url.path)
    errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
    return error_response(400, "bad_request", "Invalid request payload", {"errors": errors})


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health():
    return Health()


@app.get("/v1/version", response_model=Version)
def version():
    return Version(version=API_VERSION)


# === Column endpoints ===


@app.post("/v1/columns", response_model=ColumnOut, status_code=201)
def create_column(payload: ColumnIn, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    column = Storage(db).create_column(user, payload.title)
    db.commit()
    return column_out(column)


@app.get("/v1/columns", response_model=ColumnsPage)
def list_columns(user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    columns = Storage(db).list_columns_for_user(user)
    return {"columns": [column_out(c) for c in columns]}


@app.get("/v1/columns/{column_id}", response_model=ColumnOut)
def get_column(column_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    return column_out(Storage(db).owned_column(column_id, user, "view"))


@app.patch("/v1/columns/{column_id}", response_model=ColumnOut)
def rename_column(
    column_id: str,
    payload: ColumnIn,
    user: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    storage = Storage(db)
    column = storage.rename_column(storage.owned_column(column_id, user, "update"), payload.title)
    db.commit()
    return column_out(column)


@app.delete("/v1/columns/{column_id}", status_code=204)
def delete_column(column_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    storage = Storage(db)
    storage.owned_column(column_id, user, "delete")
    with column_locks(column_id):
        storage.delete_column(storage.owned_column(column_id, user, "delete"))
        db.commit()
    return Response(status_code=204)


@app.get("/v1/columns/{column_id}/cards", response_model=list[CardOut])
def list_cards(column_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    storage = Storage(db)
    column = storage.owned_column(column_id, user, "view cards in")
    return [card_out(c) for c in storage.list_cards(column.id)]


@app.get("/v1/columns/{column_id}/integrity", response_model=ColumnIntegrity)
def column_integrity(column_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    return OrderingEngine(db).integrity(column_id, user)


# === Card endpoints ===


@app.post("/v1/cards", response_model=CardOut, status_code=201)
def create_card(payload: CardIn, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    fields = payload.model_dump(exclude_unset=True, exclude={"column"})
    card = OrderingEngine(db).append(payload.column, fields, user)
    return card_out(card)


@app.patch("/v1/cards/reorder", response_model=list[CardOut])
def reorder_cards(payload: CardReorder, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    assignments = [o.model_dump() for o in payload.cardOrders]
    cards = OrderingEngine(db).reorder(payload.columnId, assignments, user)
    return [card_out(c) for c in cards]


@app.get("/v1/cards/{card_id}", response_model=CardOut)
def get_card(card_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    return card_out(Storage(db).owned_card(card_id, user, "view"))


@app.patch("/v1/cards/{card_id}", response_model=CardOut)
@app.put("/v1/cards/{card_id}", response_model=CardOut)
def update_card(
    card_id: str,
    payload: CardPatch,
    user: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    storage = Storage(db)
    card = storage.owned_card(card_id, user, "update")
    fields = normalize_card_fields(payload.model_dump(exclude_unset=True))
    card = storage.update_card(card, fields)
    db.commit()
    return card_out(card)


@app.post("/v1/cards/{card_id}/move", response_model=CardOut)
def move_card(
    card_id: str,
    payload: CardMove,
    user: str = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    card = OrderingEngine(db).move(card_id, payload.newColumnId, payload.newPosition, user)
    return card_out(card)


@app.delete("/v1/cards/{card_id}", status_code=204)
def delete_card(card_id: str, user: str = Depends(get_current_user), db: Session = Depends(get_db)):
    OrderingEngine(db).remove(card_id, user)
    return Response(status_code=204)
