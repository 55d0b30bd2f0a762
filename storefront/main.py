import logging
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, Path, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models, schemas
from .auth import CredentialService, TokenService, bearer_token
from .config import Settings, load_settings
from .crud import Accounts, Catalog, Orders
from .db import Base, build_engine, make_session_factory
from .errors import AuthError, NotFoundError, StorefrontError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

# ids are server-assigned and must fit a 64-bit INTEGER column
RowId = Annotated[int, Path(ge=1, le=models.MAX_INT)]


# -------------------- dependencies --------------------

# One session per request, released on every exit path

def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def current_user_id(request: Request, authorization: Optional[str] = Header(default=None)) -> int:
    token = bearer_token(authorization)
    return request.app.state.tokens.verify(token)


def get_accounts(request: Request) -> Accounts:
    return request.app.state.accounts


def get_catalog(request: Request) -> Catalog:
    return request.app.state.catalog


def get_orders(request: Request) -> Orders:
    return request.app.state.orders


@router.get("/health")
async def health():
    return {"status": "ok"}


# -------------------- users --------------------

@router.post("/users", response_model=schemas.AuthResult)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    accounts: Accounts = Depends(get_accounts),
):
    user, token = accounts.register(db, payload.first_name, payload.last_name, payload.password)
    return {"user": user, "token": token}


@router.post("/users/authenticate", response_model=schemas.AuthResult)
def authenticate_user(
    payload: schemas.UserLogin,
    db: Session = Depends(get_db),
    accounts: Accounts = Depends(get_accounts),
):
    user = accounts.authenticate(db, payload.first_name, payload.password)
    if user is None:
        raise AuthError("Invalid credentials")
    return {"user": user, "token": accounts.tokens.issue(user.id)}


@router.get("/users", response_model=List[schemas.UserRead])
def list_users(
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    accounts: Accounts = Depends(get_accounts),
):
    return accounts.list(db)


@router.get("/users/{user_id}", response_model=schemas.UserDetail)
def get_user(
    user_id: RowId,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    accounts: Accounts = Depends(get_accounts),
):
    try:
        return accounts.get_with_history(db, user_id)
    except NotFoundError as e:
        raise ValidationError(e.message) from e


# -------------------- products --------------------

# /top and /category/... are declared ahead of /{product_id}

@router.get("/products/top", response_model=List[schemas.TopSeller])
def top_products(db: Session = Depends(get_db), catalog: Catalog = Depends(get_catalog)):
    return catalog.top_sellers(db)


@router.get("/products/category/{category}", response_model=List[schemas.ProductRead])
def products_by_category(category: str, db: Session = Depends(get_db), catalog: Catalog = Depends(get_catalog)):
    return catalog.by_category(db, category)


@router.get("/products", response_model=List[schemas.ProductRead])
def list_products(db: Session = Depends(get_db), catalog: Catalog = Depends(get_catalog)):
    return catalog.list(db)


@router.get("/products/{product_id}", response_model=schemas.ProductRead)
def get_product(product_id: RowId, db: Session = Depends(get_db), catalog: Catalog = Depends(get_catalog)):
    return catalog.get(db, product_id)


@router.post("/products", response_model=schemas.ProductRead)
def create_product(
    payload: schemas.ProductCreate,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    catalog: Catalog = Depends(get_catalog),
):
    return catalog.create(db, payload.name, payload.price, payload.category)


# -------------------- orders --------------------

@router.post("/orders", response_model=schemas.OrderRead)
def create_order(
    payload: Optional[schemas.OrderCreate] = None,
    user_id: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    orders: Orders = Depends(get_orders),
):
    status = payload.status if payload else None
    return orders.create(db, user_id, status)


@router.get("/orders/current/{user_id}", response_model=Optional[schemas.OrderRead])
def current_order(
    user_id: RowId,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    orders: Orders = Depends(get_orders),
):
    return orders.current(db, user_id)


@router.get("/orders/completed/{user_id}", response_model=List[schemas.OrderRead])
def completed_orders(
    user_id: RowId,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    orders: Orders = Depends(get_orders),
):
    return orders.completed(db, user_id)


@router.get("/orders/{order_id}", response_model=schemas.OrderDetail)
def get_order(
    order_id: RowId,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    orders: Orders = Depends(get_orders),
):
    try:
        return orders.get_detail(db, order_id)
    except NotFoundError as e:
        raise ValidationError(e.message) from e


@router.post("/orders/{order_id}/products", response_model=schemas.LineItemRead)
def add_product_to_order(
    order_id: RowId,
    payload: schemas.LineItemCreate,
    _: int = Depends(current_user_id),
    db: Session = Depends(get_db),
    orders: Orders = Depends(get_orders),
):
    return orders.add_line_item(db, order_id, payload.product_id, payload.quantity)


# -------------------- error mapping --------------------

async def storefront_error_handler(request: Request, exc: StorefrontError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if isinstance(part, str) and part not in ("body", "path", "query"))
        message = f"Invalid {field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    message = str(getattr(exc, "orig", None) or exc)
    logger.warning("database error on %s %s: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"error": message})


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application and every service it uses, once."""
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    engine = build_engine(settings.database_url)
    # Create tables if not existing
    Base.metadata.create_all(bind=engine)
    logger.info("database ready at %s", engine.url.render_as_string(hide_password=True))

    credentials = CredentialService(settings.password_pepper, settings.hash_rounds)
    tokens = TokenService(settings.token_secret, settings.token_ttl_seconds)

    app = FastAPI(title="Storefront API")
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = make_session_factory(engine)
    app.state.tokens = tokens
    app.state.accounts = Accounts(credentials, tokens)
    app.state.catalog = Catalog()
    app.state.orders = Orders()

    app.include_router(router)
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, persistence_error_handler)
    return app


if __name__ == "__main__":
    import uvicorn

    settings = load_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level=settings.log_level.lower())
