# orderbot/ordering/stores.py
from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, List, Optional, Set

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import DuplicateOrderCode, StoreError
from ..log import logger
from ..models import CustomerHistory, Order, PaymentVerification
from .states import ORDER_STATUS_IN_PREPARATION, VERIFICATION_PENDING

SessionFactory = Callable[[], Session]


# -------------------
# Records
# -------------------
@dataclass
class OrderRecord:
    code: str
    created_date: date
    created_time: str
    customer_identity: str
    customer_name: str
    address: str
    item_summary: str
    payment_method: str
    total: Decimal
    status: str = ORDER_STATUS_IN_PREPARATION
    cash_tendered: Optional[Decimal] = None
    change: Optional[Decimal] = None
    invoiced: bool = False


@dataclass
class HistoryRecord:
    identity: str
    display_name: str
    visit_count: int = 0


@dataclass
class VerificationRecord:
    customer_identity: str
    customer_name: str
    order_summary: str
    amount: Decimal
    payment_method: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    status: str = VERIFICATION_PENDING
    id: str = ""


# -------------------
# Contracts
# -------------------
class OrderStore(ABC):
    @abstractmethod
    async def create_order(self, order: OrderRecord) -> None: ...

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[OrderRecord]: ...

    @abstractmethod
    async def update_status(self, code: str, status: str) -> bool: ...

    @abstractmethod
    async def list_codes(self) -> Set[str]: ...

    @abstractmethod
    async def list_for_date(self, day: date) -> List[OrderRecord]: ...

    @abstractmethod
    async def mark_invoiced(self, code: str) -> None: ...


class HistoryStore(ABC):
    @abstractmethod
    async def find(self, identity: str) -> Optional[HistoryRecord]: ...

    @abstractmethod
    async def upsert(self, identity: str, name: str) -> None: ...


class VerificationLog(ABC):
    @abstractmethod
    async def create(self, record: VerificationRecord) -> str: ...

    @abstractmethod
    async def update_status(self, verification_id: str, status: str) -> None: ...

    @abstractmethod
    async def is_pending(self, verification_id: str) -> bool: ...

    @abstractmethod
    async def get(self, verification_id: str) -> Optional[VerificationRecord]: ...

    @abstractmethod
    async def get_last_pending(self) -> Optional[VerificationRecord]: ...


# -------------------
# SQLAlchemy implementations
# -------------------
class _SqlStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def _run(self, fn, *args):
        def _call():
            db = self._session_factory()
            try:
                return fn(db, *args)
            except IntegrityError:
                db.rollback()
                raise
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("%s failed: %s", type(self).__name__, e)
                raise StoreError(f"{type(self).__name__} unavailable") from e
            finally:
                db.close()

        return await run_in_threadpool(_call)


def _order_to_record(row: Order) -> OrderRecord:
    return OrderRecord(
        code=row.code,
        created_date=row.created_date,
        created_time=row.created_time,
        customer_identity=row.customer_identity,
        customer_name=row.customer_name or "",
        address=row.address or "",
        item_summary=row.item_summary or "",
        payment_method=row.payment_method or "",
        total=Decimal(row.total),
        status=row.status,
        cash_tendered=Decimal(row.cash_tendered) if row.cash_tendered is not None else None,
        change=Decimal(row.change) if row.change is not None else None,
        invoiced=bool(row.invoiced),
    )


class SqlOrderStore(_SqlStore, OrderStore):
    async def create_order(self, order: OrderRecord) -> None:
        def _create(db: Session, rec: OrderRecord) -> None:
            db.add(
                Order(
                    code=rec.code,
                    created_date=rec.created_date,
                    created_time=rec.created_time,
                    customer_identity=rec.customer_identity,
                    customer_name=rec.customer_name,
                    address=rec.address,
                    item_summary=rec.item_summary,
                    status=rec.status,
                    payment_method=rec.payment_method,
                    cash_tendered=rec.cash_tendered,
                    change=rec.change,
                    total=rec.total,
                    invoiced=rec.invoiced,
                )
            )
            db.commit()

        try:
            await self._run(_create, order)
        except IntegrityError as e:
            raise DuplicateOrderCode(order.code) from e

    async def find_by_code(self, code: str) -> Optional[OrderRecord]:
        def _find(db: Session, c: str) -> Optional[OrderRecord]:
            row = db.query(Order).filter(Order.code == c.strip().upper()).first()
            return _order_to_record(row) if row else None

        return await self._run(_find, code)

    async def update_status(self, code: str, status: str) -> bool:
        def _update(db: Session, c: str, st: str) -> bool:
            row = db.query(Order).filter(Order.code == c.strip().upper()).first()
            if not row:
                return False
            row.status = st
            row.updated_at = datetime.utcnow()
            db.commit()
            return True

        return await self._run(_update, code, status)

    async def list_codes(self) -> Set[str]:
        def _codes(db: Session) -> Set[str]:
            return {c.upper() for (c,) in db.query(Order.code).all()}

        return await self._run(_codes)

    async def list_for_date(self, day: date) -> List[OrderRecord]:
        def _list(db: Session, d: date) -> List[OrderRecord]:
            rows = db.query(Order).filter(Order.created_date == d).order_by(Order.id.asc()).all()
            return [_order_to_record(r) for r in rows]

        return await self._run(_list, day)

    async def mark_invoiced(self, code: str) -> None:
        def _mark(db: Session, c: str) -> None:
            row = db.query(Order).filter(Order.code == c.strip().upper()).first()
            if row:
                row.invoiced = True
                db.commit()

        await self._run(_mark, code)


class SqlHistoryStore(_SqlStore, HistoryStore):
    async def find(self, identity: str) -> Optional[HistoryRecord]:
        def _find(db: Session, ident: str) -> Optional[HistoryRecord]:
            row = db.get(CustomerHistory, ident)
            if not row:
                return None
            return HistoryRecord(identity=row.identity, display_name=row.display_name or "", visit_count=row.visit_count)

        return await self._run(_find, identity)

    async def upsert(self, identity: str, name: str) -> None:
        def _upsert(db: Session, ident: str, nm: str) -> None:
            row = db.get(CustomerHistory, ident)
            if row:
                row.visit_count = (row.visit_count or 0) + 1
                if nm and row.display_name != nm:
                    row.display_name = nm
            else:
                db.add(CustomerHistory(identity=ident, display_name=nm, visit_count=1))
            db.commit()

        await self._run(_upsert, identity, name)


def _verification_to_record(row: PaymentVerification) -> VerificationRecord:
    return VerificationRecord(
        id=row.id,
        customer_identity=row.customer_identity,
        customer_name=row.customer_name or "",
        order_summary=row.order_summary or "",
        amount=Decimal(row.amount),
        payment_method=row.payment_method or "",
        timestamp=row.created_at,
        status=row.status,
    )


class SqlVerificationLog(_SqlStore, VerificationLog):
    async def create(self, record: VerificationRecord) -> str:
        def _create(db: Session, rec: VerificationRecord) -> str:
            vid = uuid.uuid4().hex[:8]
            db.add(
                PaymentVerification(
                    id=vid,
                    customer_identity=rec.customer_identity,
                    customer_name=rec.customer_name,
                    order_summary=rec.order_summary,
                    amount=rec.amount,
                    payment_method=rec.payment_method,
                    created_at=rec.timestamp,
                    status=VERIFICATION_PENDING,
                )
            )
            db.commit()
            return vid

        return await self._run(_create, record)

    async def update_status(self, verification_id: str, status: str) -> None:
        def _update(db: Session, vid: str, st: str) -> None:
            row = db.get(PaymentVerification, vid)
            if row:
                row.status = st
                db.commit()

        await self._run(_update, verification_id, status)

    async def is_pending(self, verification_id: str) -> bool:
        rec = await self.get(verification_id)
        return rec is not None and rec.status == VERIFICATION_PENDING

    async def get(self, verification_id: str) -> Optional[VerificationRecord]:
        def _get(db: Session, vid: str) -> Optional[VerificationRecord]:
            row = db.get(PaymentVerification, vid)
            return _verification_to_record(row) if row else None

        return await self._run(_get, verification_id)

    async def get_last_pending(self) -> Optional[VerificationRecord]:
        def _last(db: Session) -> Optional[VerificationRecord]:
            row = (
                db.query(PaymentVerification)
                .filter(PaymentVerification.status == VERIFICATION_PENDING)
                .order_by(PaymentVerification.created_at.desc())
                .first()
            )
            return _verification_to_record(row) if row else None

        return await self._run(_last)
