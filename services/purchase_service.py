import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select, func

from database.models import Product, Supplier, PurchaseOrder, PurchaseOrderItem
from database.schemas import PurchaseOrderItemInput
from services.errors import ValidationError, NotFoundError
from services.stock_service import add_stock
from services.validation import clean_str, require_non_negative

logger = logging.getLogger(__name__)

STATUSES = ("pending", "ordered", "completed", "cancelled")


def _check_status(status: Optional[str]) -> Optional[str]:
    status = clean_str(status)
    if status is None:
        return None
    status = status.lower()
    if status not in STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(STATUSES)}")
    return status


class PurchaseOrderService:
    def receive(self, session: Session, order: PurchaseOrder):
        """Adds the ordered quantities to stock. Runs once per order."""
        if order.received_at is not None:
            return
        for item in order.items:
            add_stock(session, item.product_id, item.quantity)
        order.received_at = datetime.now()

    def create(
        self,
        session: Session,
        supplier_id: Optional[int],
        items_data: Optional[List[PurchaseOrderItemInput]],
        order_date: Optional[datetime] = None,
        expected_date: Optional[datetime] = None,
        status: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        if not supplier_id or not items_data:
            raise ValidationError("Supplier ID and items are required")
        if not session.get(Supplier, supplier_id):
            raise NotFoundError("Supplier not found")
        status = _check_status(status) or "pending"

        order = PurchaseOrder(
            supplier_id=supplier_id,
            order_date=order_date or datetime.now(),
            expected_date=expected_date,
            status=status,
            notes=clean_str(notes),
        )
        total = 0.0
        for item in items_data:
            if not item.product_id or not item.quantity or item.quantity <= 0:
                raise ValidationError("All items must have product_id and a positive quantity")
            require_non_negative(item.unit_price, "Unit price")
            product = session.get(Product, item.product_id)
            if not product:
                raise ValidationError(f"Product {item.product_id} not found")
            unit_price = item.unit_price if item.unit_price is not None else product.buy_price
            line_total = round(unit_price * item.quantity, 2)
            total += line_total
            order.items.append(PurchaseOrderItem(
                product_id=product.id,
                quantity=item.quantity,
                unit_price=unit_price,
                total_price=line_total,
            ))
        order.total_amount = round(total, 2)

        try:
            session.add(order)
            if status == "completed":
                self.receive(session, order)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Purchase order rolled back")
            raise

        session.refresh(order)
        logger.info("Purchase order %s created for supplier %s, total %.2f", order.id, supplier_id, order.total_amount)
        return order

    def update(
        self,
        session: Session,
        order: PurchaseOrder,
        status: Optional[str] = None,
        order_date: Optional[datetime] = None,
        expected_date: Optional[datetime] = None,
        notes: Optional[str] = None,
    ) -> PurchaseOrder:
        status = _check_status(status)
        if order.status == "completed" and status and status != "completed":
            raise ValidationError("Completed purchase orders cannot change status")

        if order_date is not None:
            order.order_date = order_date
        if expected_date is not None:
            order.expected_date = expected_date
        if notes is not None:
            order.notes = clean_str(notes)

        try:
            if status:
                order.status = status
                if status == "completed":
                    self.receive(session, order)
            session.add(order)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Updating purchase order %s rolled back", order.id)
            raise

        session.refresh(order)
        return order

    def delete(self, session: Session, order: PurchaseOrder):
        if order.status == "completed":
            raise ValidationError("Completed purchase orders cannot be deleted")
        session.delete(order)
        session.commit()

    def stats(self, session: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
        def scoped(statement):
            if start_date:
                statement = statement.where(PurchaseOrder.order_date >= start_date)
            if end_date:
                statement = statement.where(PurchaseOrder.order_date <= end_date)
            return statement

        total_orders = session.exec(scoped(select(func.count(PurchaseOrder.id)))).one()
        by_status = {}
        for status in STATUSES:
            by_status[status] = session.exec(
                scoped(select(func.count(PurchaseOrder.id)).where(PurchaseOrder.status == status))
            ).one()
        total_value = session.exec(scoped(select(func.sum(PurchaseOrder.total_amount)))).one() or 0.0

        return {
            "total_orders": total_orders,
            "pending_orders": by_status["pending"],
            "ordered_orders": by_status["ordered"],
            "completed_orders": by_status["completed"],
            "cancelled_orders": by_status["cancelled"],
            "total_value": float(total_value),
        }
