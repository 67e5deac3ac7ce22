# orderbot/kitchen.py
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List
from zoneinfo import ZoneInfo

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from .auth import require_staff
from .config import settings
from .log import logger
from .ordering.cart import format_price
from .ordering.stores import OrderRecord, OrderStore

router = APIRouter(prefix="/kitchen", tags=["kitchen"])


class StatusIn(BaseModel):
    status: str


def get_order_store(request: Request) -> OrderStore:
    return request.app.state.orders


def order_to_dict(o: OrderRecord) -> Dict[str, Any]:
    return {
        "code": o.code,
        "date": o.created_date.isoformat(),
        "time": o.created_time,
        "customer_name": o.customer_name,
        "customer_identity": o.customer_identity,
        "address": o.address,
        "items": o.item_summary,
        "status": o.status,
        "payment_method": o.payment_method,
        "total": str(o.total),
        "cash_tendered": str(o.cash_tendered) if o.cash_tendered is not None else None,
        "change": str(o.change) if o.change is not None else None,
        "invoiced": o.invoiced,
    }


def render_invoice(o: OrderRecord, restaurant: str, currency_symbol: str = "$") -> str:
    lines = [
        restaurant,
        f"Invoice for order {o.code}",
        f"Date: {o.created_date.strftime('%d/%m/%Y')} {o.created_time}",
        "",
        f"Customer: {o.customer_name}",
        f"Address: {o.address}",
        "",
        o.item_summary,
        "",
        f"Total: {format_price(o.total, currency_symbol)}",
        f"Payment method: {o.payment_method}",
    ]
    if o.cash_tendered is not None:
        lines.append(f"Paying with: {format_price(o.cash_tendered, currency_symbol)}")
    if o.change is not None:
        lines.append(f"Change: {format_price(o.change, currency_symbol)}")
    return "\n".join(lines) + "\n"


def write_invoice(o: OrderRecord, directory: str | Path, restaurant: str, currency_symbol: str = "$") -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"invoice_{o.code}.txt"
    path.write_text(render_invoice(o, restaurant, currency_symbol), encoding="utf-8")
    return path


@router.get("/orders")
async def list_orders(
    _staff_id: int = Depends(require_staff),
    orders: OrderStore = Depends(get_order_store),
) -> List[Dict[str, Any]]:
    today = datetime.now(ZoneInfo(settings.timezone)).date()
    return [order_to_dict(o) for o in await orders.list_for_date(today)]


@router.post("/orders/{code}/status")
async def update_order_status(
    code: str,
    payload: StatusIn,
    _staff_id: int = Depends(require_staff),
    orders: OrderStore = Depends(get_order_store),
):
    status = payload.status.strip()
    if not status:
        raise HTTPException(status_code=400, detail="Status is required")

    if not await orders.update_status(code, status):
        raise HTTPException(status_code=404, detail="Order not found")

    order = await orders.find_by_code(code)
    invoice = None
    if order is not None and not order.invoiced:
        path = await run_in_threadpool(
            write_invoice, order, settings.invoice_dir, settings.restaurant_name, settings.currency_symbol
        )
        await orders.mark_invoiced(order.code)
        logger.info("Invoice for %s written to %s", order.code, path)
        invoice = path.name

    return {"ok": True, "code": code.strip().upper(), "status": status, "invoice": invoice}
