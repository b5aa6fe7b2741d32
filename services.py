from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import AuthenticationError, ConflictError, NotFoundError, ValidationError
from models import AuthUser, Category, Transaction, TransactionType
from passwords import hash_password, verify_password
from schemas import CategoryIn, SignupIn, TransactionIn, UserUpdateIn
from tokens import issue_token

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
DEFAULT_SORT = "created_at"
# largest value the database drivers accept for LIMIT/OFFSET
MAX_SQL_INT = 2**63 - 1

CATEGORY_SORT_COLUMNS = {
    "created_at": Category.created_at,
    "updated_at": Category.updated_at,
    "name": Category.name,
    "type": Category.type,
}

TRANSACTION_SORT_COLUMNS = {
    "created_at": Transaction.created_at,
    "updated_at": Transaction.updated_at,
    "title": Transaction.title,
    "description": Transaction.title,
    "amount": Transaction.amount,
    "type": Transaction.type,
}


@dataclass
class ListQuery:
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE
    search: Optional[str] = None
    sort_by: Optional[str] = None
    order: Optional[str] = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size

    def validate(self) -> None:
        if self.page < 1:
            raise ValidationError("page must be at least 1")
        if self.page_size < 1:
            raise ValidationError("pageSize must be at least 1")
        if self.page_size > MAX_SQL_INT or self.offset > MAX_SQL_INT:
            raise ValidationError("page or pageSize is out of range")


def order_clause(columns: dict, sort_by: Optional[str], order: Optional[str], tiebreak):
    """Resolve ``sort_by``/``order`` against an allow-list of columns.

    Unknown sort keys fall back to ``created_at``; anything other than
    ``"desc"`` sorts ascending. The tiebreak column keeps pages stable when
    the sort key has duplicates.
    """
    column = columns.get(sort_by or DEFAULT_SORT, columns[DEFAULT_SORT])
    if order == "desc":
        return [column.desc(), tiebreak.desc()]
    return [column.asc(), tiebreak.asc()]


def like_pattern(value: str) -> str:
    escaped = (
        value.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    return f"%{escaped}%"


def _commit(session: Session, conflict_message: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise ConflictError(conflict_message) from exc


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def _by_email(self, email: str) -> Optional[AuthUser]:
        return self.session.scalar(select(AuthUser).where(AuthUser.email == email))

    def signup(self, data: SignupIn) -> AuthUser:
        if self._by_email(data.email):
            raise ConflictError("Email already in use")
        user = AuthUser(
            name=data.name.strip(),
            email=data.email,
            password=hash_password(data.password),
            active=True,
        )
        self.session.add(user)
        _commit(self.session, "Email already in use")
        self.session.refresh(user)
        logger.info(f"user_created: id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> str:
        user = self._by_email(email.strip().lower())
        if not user or not user.active or not verify_password(password, user.password):
            raise AuthenticationError("Invalid email or password")
        logger.info(f"user_signed_in: id={user.id}")
        return issue_token(user.id, user.email)

    def list_all(self) -> list[AuthUser]:
        stmt = select(AuthUser).order_by(AuthUser.created_at, AuthUser.id)
        return self.session.scalars(stmt).all()

    def get(self, user_id: str) -> AuthUser:
        user = self.session.get(AuthUser, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def update(self, user_id: str, data: UserUpdateIn) -> AuthUser:
        user = self.get(user_id)
        if data.email is not None and data.email != user.email:
            other = self._by_email(data.email)
            if other and other.id != user.id:
                raise ConflictError("Email already in use")
            user.email = data.email
        if data.name is not None:
            user.name = data.name.strip()
        if data.password is not None:
            user.password = hash_password(data.password)
        if data.active is not None:
            user.active = data.active
        user.updated_at = datetime.utcnow()
        _commit(self.session, "Email already in use")
        self.session.refresh(user)
        logger.info(f"user_updated: id={user.id}")
        return user

    def delete(self, user_id: str) -> None:
        result = self.session.execute(delete(AuthUser).where(AuthUser.id == user_id))
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("User not found")
        self.session.commit()
        logger.info(f"user_deleted: id={user_id}")


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, query: Optional[ListQuery] = None) -> list[Category]:
        query = query or ListQuery()
        query.validate()
        stmt = select(Category).where(Category.auth_user_id == self.user_id)
        if query.search:
            stmt = stmt.where(
                func.lower(Category.name).like(like_pattern(query.search), escape="\\")
            )
        stmt = (
            stmt.order_by(
                *order_clause(
                    CATEGORY_SORT_COLUMNS, query.sort_by, query.order, Category.id
                )
            )
            .offset(query.offset)
            .limit(query.page_size)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: str) -> Category:
        category = self.session.scalar(
            select(Category).where(
                Category.id == category_id, Category.auth_user_id == self.user_id
            )
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        category = Category(
            auth_user_id=self.user_id,
            name=data.name,
            type=data.type,
        )
        self.session.add(category)
        _commit(self.session, "Category could not be created")
        self.session.refresh(category)
        logger.info(f"category_created: user={self.user_id} id={category.id}")
        return category

    def update(self, category_id: str, data: CategoryIn) -> Category:
        category = self.get(category_id)
        category.name = data.name
        if category.type != data.type:
            # transactions always carry their category's type
            self.session.execute(
                update(Transaction)
                .where(
                    Transaction.category_id == category.id,
                    Transaction.auth_user_id == self.user_id,
                )
                .values(type=data.type, updated_at=datetime.utcnow())
                .execution_options(synchronize_session="fetch")
            )
        category.type = data.type
        category.updated_at = datetime.utcnow()
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_updated: user={self.user_id} id={category.id}")
        return category

    def delete(self, category_id: str) -> None:
        # dependent transactions go with it through the FK cascade
        result = self.session.execute(
            delete(Category).where(
                Category.id == category_id, Category.auth_user_id == self.user_id
            )
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("Category not found")
        self.session.commit()
        logger.info(f"category_deleted: user={self.user_id} id={category_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _owned_category(self, category_id: str) -> Category:
        # row lock keeps the category alive until the write commits
        category = self.session.scalar(
            select(Category)
            .where(Category.id == category_id, Category.auth_user_id == self.user_id)
            .with_for_update()
        )
        if not category:
            raise NotFoundError("Category not found")
        return category

    @staticmethod
    def _resolve_type(
        category: Category, requested: Optional[TransactionType]
    ) -> TransactionType:
        if requested is None:
            return category.type
        if requested != category.type:
            raise ValidationError("Category type mismatch")
        return requested

    def list(self, query: Optional[ListQuery] = None) -> list[Transaction]:
        query = query or ListQuery()
        query.validate()
        stmt = select(Transaction).where(Transaction.auth_user_id == self.user_id)
        if query.search:
            stmt = stmt.where(
                func.lower(Transaction.title).like(
                    like_pattern(query.search), escape="\\"
                )
            )
        stmt = (
            stmt.order_by(
                *order_clause(
                    TRANSACTION_SORT_COLUMNS, query.sort_by, query.order, Transaction.id
                )
            )
            .offset(query.offset)
            .limit(query.page_size)
        )
        return self.session.scalars(stmt).all()

    def get(self, transaction_id: str) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.auth_user_id == self.user_id,
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def create(self, data: TransactionIn) -> Transaction:
        category = self._owned_category(data.category_id)
        txn = Transaction(
            auth_user_id=self.user_id,
            title=data.title,
            amount=data.amount,
            type=self._resolve_type(category, data.type),
            category_id=category.id,
        )
        self.session.add(txn)
        _commit(self.session, "Category no longer exists")
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user={self.user_id} id={txn.id} category={category.id}"
        )
        return txn

    def update(self, transaction_id: str, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        category = self._owned_category(data.category_id)
        txn_type = self._resolve_type(category, data.type)
        txn.title = data.title
        txn.amount = data.amount
        txn.type = txn_type
        txn.category_id = category.id
        txn.updated_at = datetime.utcnow()
        _commit(self.session, "Category no longer exists")
        self.session.refresh(txn)
        logger.info(f"transaction_updated: user={self.user_id} id={txn.id}")
        return txn

    def delete(self, transaction_id: str) -> None:
        result = self.session.execute(
            delete(Transaction).where(
                Transaction.id == transaction_id,
                Transaction.auth_user_id == self.user_id,
            )
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFoundError("Transaction not found")
        self.session.commit()
        logger.info(f"transaction_deleted: user={self.user_id} id={transaction_id}")
