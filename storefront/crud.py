import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .auth import CredentialService, TokenService
from .errors import NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

RECENT_PURCHASES_LIMIT = 5
TOP_SELLERS_LIMIT = 5

# Business rule: prices stored rounded to 2 decimals, non-negative

def round_amount(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        # the driver's message goes back to the caller as-is
        message = str(getattr(e, "orig", None) or e)
        logger.warning("%s failed: %s", action, message)
        raise PersistenceError(message) from e


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= models.MAX_INT


class Accounts:
    def __init__(self, credentials: CredentialService, tokens: TokenService):
        self.credentials = credentials
        self.tokens = tokens

    def register(self, db: Session, first_name: Optional[str], last_name: Optional[str], password: Optional[str]):
        """Create a user and issue a token for it. Returns ``(user, token)``."""
        if not first_name or not last_name or not password:
            raise ValidationError(
                "Missing required fields: first_name, last_name, and password are required"
            )
        user = models.User(
            first_name=first_name,
            last_name=last_name,
            password_digest=self.credentials.hash(password),
        )
        db.add(user)
        _commit(db, f"creating user {first_name}")
        db.refresh(user)
        logger.info("registered user %s", user.id)
        return user, self.tokens.issue(user.id)

    def authenticate(self, db: Session, first_name: Optional[str], password: Optional[str]) -> Optional[models.User]:
        """Return the user whose password matches, or None.

        First names are not unique, so every account sharing the name is
        tried in registration order. A miss never says which part was wrong.
        """
        if not first_name or not password:
            return None
        candidates = db.execute(
            select(models.User).where(models.User.first_name == first_name).order_by(models.User.id)
        ).scalars().all()
        for user in candidates:
            if self.credentials.verify(password, user.password_digest):
                return user
        logger.info("failed login for first name %r", first_name)
        return None

    def list(self, db: Session) -> List[models.User]:
        return db.query(models.User).order_by(models.User.id).all()

    def get(self, db: Session, user_id: int) -> models.User:
        user = db.get(models.User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def recent_purchases(self, db: Session, user_id: int, limit: int = RECENT_PURCHASES_LIMIT) -> List[dict]:
        """Line items from the user's completed orders, newest order first."""
        stmt = (
            select(
                models.Product.id.label("product_id"),
                models.Product.name,
                models.Product.price,
                models.OrderProduct.quantity,
                models.Order.id.label("order_id"),
                models.Order.status,
                models.Order.created_at.label("order_date"),
            )
            .select_from(models.OrderProduct)
            .join(models.Order, models.OrderProduct.order_id == models.Order.id)
            .join(models.Product, models.OrderProduct.product_id == models.Product.id)
            .where(models.Order.user_id == user_id, models.Order.status == "complete")
            .order_by(models.Order.created_at.desc(), models.Order.id.desc(), models.OrderProduct.id)
            .limit(limit)
        )
        return [dict(row) for row in db.execute(stmt).mappings().all()]

    def get_with_history(self, db: Session, user_id: int) -> dict:
        user = self.get(db, user_id)
        return {"user": user, "recent_purchases": self.recent_purchases(db, user_id)}


class Catalog:
    def create(self, db: Session, name: Optional[str], price, category: Optional[str] = None) -> models.Product:
        if not name or price is None:
            raise ValidationError("name and price are required")
        try:
            amount = Decimal(str(price))
        except InvalidOperation:
            raise ValidationError("price must be a number")
        if not amount.is_finite():
            raise ValidationError("price must be a number")
        amount = round_amount(amount)
        if amount < 0:
            raise ValidationError("price must be non-negative")

        product = models.Product(name=name, price=amount, category=category or None)
        db.add(product)
        _commit(db, f"creating product {name}")
        db.refresh(product)
        return product

    def list(self, db: Session) -> List[models.Product]:
        return db.query(models.Product).order_by(models.Product.id).all()

    def get(self, db: Session, product_id: int) -> models.Product:
        product = db.get(models.Product, product_id)
        if not product:
            raise NotFoundError("Product not found")
        return product

    def by_category(self, db: Session, category: str) -> List[models.Product]:
        return (
            db.query(models.Product)
            .filter(models.Product.category == category)
            .order_by(models.Product.id)
            .all()
        )

    def top_sellers(self, db: Session, limit: int = TOP_SELLERS_LIMIT) -> List[dict]:
        """Products ranked by total quantity across all line items.

        Unsold products rank with a total of 0; ties go to the lower id.
        """
        total = func.coalesce(func.sum(models.OrderProduct.quantity), 0).label("total_quantity")
        stmt = (
            select(models.Product, total)
            .outerjoin(models.OrderProduct, models.OrderProduct.product_id == models.Product.id)
            .group_by(models.Product.id)
            .order_by(total.desc(), models.Product.id)
            .limit(limit)
        )
        return [
            {
                "id": product.id,
                "name": product.name,
                "price": product.price,
                "category": product.category,
                "total_quantity": int(total_quantity),
            }
            for product, total_quantity in db.execute(stmt).all()
        ]


class Orders:
    def create(self, db: Session, user_id: int, status: Optional[str] = None) -> models.Order:
        status = status or "active"
        if status not in models.ORDER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(models.ORDER_STATUSES)}")
        order = models.Order(user_id=user_id, status=status)
        db.add(order)
        _commit(db, f"creating order for user {user_id}")
        db.refresh(order)
        logger.info("order %s created for user %s (%s)", order.id, user_id, status)
        return order

    def current(self, db: Session, user_id: int) -> Optional[models.Order]:
        stmt = (
            select(models.Order)
            .where(models.Order.user_id == user_id, models.Order.status == "active")
            .order_by(models.Order.created_at.desc(), models.Order.id.desc())
            .limit(1)
        )
        return db.execute(stmt).scalars().first()

    def completed(self, db: Session, user_id: int) -> List[models.Order]:
        return (
            db.query(models.Order)
            .filter(models.Order.user_id == user_id, models.Order.status == "complete")
            .order_by(models.Order.id)
            .all()
        )

    def add_line_item(self, db: Session, order_id: int, product_id, quantity) -> models.OrderProduct:
        # Order and product existence is left to the foreign keys
        if not _is_positive_int(product_id) or not _is_positive_int(quantity):
            raise ValidationError("product_id and quantity (positive integer) are required")
        item = models.OrderProduct(order_id=order_id, product_id=product_id, quantity=quantity)
        db.add(item)
        _commit(db, f"adding product {product_id} to order {order_id}")
        db.refresh(item)
        logger.info("order %s: added %s x product %s", order_id, quantity, product_id)
        return item

    def get_detail(self, db: Session, order_id: int) -> dict:
        """The order plus its line items, priced at the current catalog price."""
        order = db.get(models.Order, order_id)
        if not order:
            raise NotFoundError("Order not found")
        stmt = (
            select(
                models.Product.id.label("product_id"),
                models.Product.name,
                models.Product.price,
                models.OrderProduct.quantity,
            )
            .select_from(models.OrderProduct)
            .join(models.Product, models.OrderProduct.product_id == models.Product.id)
            .where(models.OrderProduct.order_id == order_id)
            .order_by(models.OrderProduct.id)
        )
        lines = [dict(row) for row in db.execute(stmt).mappings().all()]
        return {
            "id": order.id,
            "user_id": order.user_id,
            "status": order.status,
            "created_at": order.created_at,
            "products": lines,
        }
