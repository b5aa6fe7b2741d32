import logging
import tomllib
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import exc as sa_exc
from sqlalchemy.orm import Session

from auth import Identity, get_current_identity, get_db, require_self
from config import get_settings
from errors import FinanceError, StoreError, StoreTimeout
from schemas import (
    CategoryIn,
    CategoryOut,
    MessageOut,
    SigninIn,
    SignupIn,
    TokenOut,
    TransactionIn,
    TransactionOut,
    UserDetailOut,
    UserOut,
    UserUpdateIn,
)
from services import (
    DEFAULT_PAGE,
    DEFAULT_PAGE_SIZE,
    CategoryService,
    ListQuery,
    TransactionService,
    UserService,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker API")


def _load_app_version() -> str:
    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()


def error_response(error: FinanceError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content={"error": error.message})


def _is_store_timeout(exc: sa_exc.SQLAlchemyError) -> bool:
    if isinstance(exc, sa_exc.TimeoutError):
        return True
    if isinstance(exc, sa_exc.OperationalError):
        detail = str(exc.orig).lower()
        return "database is locked" in detail or "statement timeout" in detail
    return False


@app.exception_handler(FinanceError)
async def finance_error_handler(request: Request, exc: FinanceError):
    if exc.status_code >= 500:
        logger.error(f"request_failed: path={request.url.path} error={exc!r}")
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if not errors:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})
    first = errors[0]
    field = ".".join(
        str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path")
    )
    message = first.get("msg", "Invalid value")
    return JSONResponse(
        status_code=400, content={"error": f"{field}: {message}" if field else message}
    )


@app.exception_handler(sa_exc.SQLAlchemyError)
async def store_error_handler(request: Request, exc: sa_exc.SQLAlchemyError):
    error = StoreTimeout() if _is_store_timeout(exc) else StoreError()
    logger.error(f"store_error: path={request.url.path}", exc_info=exc)
    return error_response(error)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"unhandled_error: path={request.url.path}", exc_info=exc)
    return error_response(FinanceError())


@app.get("/")
def index():
    return {"name": "Finance Tracker API", "version": APP_VERSION}


# auth_users


@app.post("/auth_users/signup", response_model=UserOut, status_code=201)
def signup(data: SignupIn, db: Session = Depends(get_db)):
    return UserService(db).signup(data)


@app.post("/auth_users/signin", response_model=TokenOut)
def signin(data: SigninIn, db: Session = Depends(get_db)):
    token = UserService(db).authenticate(data.email, data.password)
    return TokenOut(token=token)


@app.get("/auth_users", response_model=list[UserOut])
def list_users(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return UserService(db).list_all()


@app.get("/auth_users/{user_id}", response_model=UserDetailOut)
def get_user(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    require_self(user_id, identity)
    return UserService(db).get(user_id)


@app.put("/auth_users/{user_id}", response_model=UserOut)
def update_user(
    user_id: str,
    data: UserUpdateIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    require_self(user_id, identity)
    return UserService(db).update(user_id, data)


@app.delete("/auth_users/{user_id}", response_model=MessageOut)
def delete_user(
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    require_self(user_id, identity)
    UserService(db).delete(user_id)
    return MessageOut(message="User deleted")


# category


@app.get("/category", response_model=list[CategoryOut])
def list_categories(
    page: int = Query(DEFAULT_PAGE, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1),
    name: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    order: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    query = ListQuery(
        page=page, page_size=page_size, search=name, sort_by=sort_by, order=order
    )
    return CategoryService(db, identity.id).list(query)


@app.post("/category", response_model=CategoryOut, status_code=201)
def create_category(
    data: CategoryIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return CategoryService(db, identity.id).create(data)


@app.put("/category/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: str,
    data: CategoryIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return CategoryService(db, identity.id).update(category_id, data)


@app.delete("/category/{category_id}", response_model=MessageOut)
def delete_category(
    category_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    CategoryService(db, identity.id).delete(category_id)
    return MessageOut(message="Category deleted successfully")


# transaction


@app.get("/transaction", response_model=list[TransactionOut])
def list_transactions(
    page: int = Query(DEFAULT_PAGE, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, alias="pageSize", ge=1),
    description: Optional[str] = Query(None),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    order: Optional[str] = Query(None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    query = ListQuery(
        page=page,
        page_size=page_size,
        search=description,
        sort_by=sort_by,
        order=order,
    )
    return TransactionService(db, identity.id).list(query)


@app.get("/transaction/{transaction_id}", response_model=TransactionOut)
def get_transaction(
    transaction_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).get(transaction_id)


@app.post("/transaction", response_model=TransactionOut, status_code=201)
def create_transaction(
    data: TransactionIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).create(data)


@app.put("/transaction/{transaction_id}", response_model=TransactionOut)
def update_transaction(
    transaction_id: str,
    data: TransactionIn,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    return TransactionService(db, identity.id).update(transaction_id, data)


@app.delete("/transaction/{transaction_id}", response_model=MessageOut)
def delete_transaction(
    transaction_id: str,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    TransactionService(db, identity.id).delete(transaction_id)
    return MessageOut(message="Transaction deleted successfully")


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
