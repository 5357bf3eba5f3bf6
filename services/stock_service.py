import io
import logging
from datetime import datetime
from typing import List, Optional

import barcode
from barcode.errors import BarcodeError
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from database.models import Product, Sale, SaleItem, Customer
from database.schemas import SaleItemInput
from services.errors import ValidationError, NotFoundError
from services.validation import clean_str, require_non_negative

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_METHOD = "Cash"


def sale_total(items_total: float, tax: float, discount: float) -> float:
    return round(items_total + tax - discount, 2)


def add_stock(session: Session, product_id: int, quantity: int):
    """Increments stock in SQL so concurrent sales are not overwritten."""
    statement = (
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    session.execute(statement)


class StockService:
    def generate_barcode(self, product: Product) -> bytes:
        """
        Renders the product's barcode as SVG.
        EAN13 when the code is 12/13 digits, Code128 otherwise.
        """
        if not product.barcode:
            raise NotFoundError("Product has no barcode")

        code = product.barcode
        output = io.BytesIO()
        try:
            if len(code) in (12, 13) and code.isdigit():
                rendered = barcode.get("ean13", code)
            else:
                rendered = barcode.get("code128", code)
        except BarcodeError:
            rendered = barcode.get("code128", code)
        rendered.write(output)
        return output.getvalue()

    def lock_product(self, session: Session, product_id: int) -> Optional[Product]:
        # FOR UPDATE keeps two tills from selling the same last unit (no-op on SQLite)
        statement = (
            select(Product)
            .where(Product.id == product_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return session.exec(statement).first()

    def process_sale(
        self,
        session: Session,
        items_data: Optional[List[SaleItemInput]],
        customer_id: Optional[int] = None,
        discount: Optional[float] = 0.0,
        tax: Optional[float] = 0.0,
        payment_method: Optional[str] = None,
    ) -> Sale:
        """
        Creates a Sale with its items and decrements product stock.
        Everything is committed together or rolled back together.
        items_data expected format: [SaleItemInput(product_id=1, quantity=2, price=9.5), ...]
        price is optional and defaults to the product's sell price.
        """
        if not items_data:
            raise ValidationError("Sale items are required")

        discount = discount or 0.0
        tax = tax or 0.0
        require_non_negative(discount, "Discount")
        require_non_negative(tax, "Tax")

        if customer_id is not None and not session.get(Customer, customer_id):
            raise NotFoundError("Customer not found")

        # Quantities per product, so repeated lines are checked against stock together
        requested = {}
        for item in items_data:
            if not item.product_id or not item.quantity or item.quantity <= 0:
                raise ValidationError("All items must have product_id and a positive quantity")
            require_non_negative(item.price, "Item price")
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        # Lock in id order so concurrent sales cannot deadlock
        products = {}
        for product_id in sorted(requested):
            qty = requested[product_id]
            product = self.lock_product(session, product_id)
            if not product:
                raise ValidationError(f"Product {product_id} not found")
            if product.quantity < qty:
                raise ValidationError(f"Insufficient stock for product {product.name}. Available: {product.quantity}")
            products[product_id] = product

        sale = Sale(
            customer_id=customer_id,
            discount=discount,
            tax=tax,
            payment_method=clean_str(payment_method) or DEFAULT_PAYMENT_METHOD,
            date=datetime.now(),
        )
        items_total = 0.0
        for item in items_data:
            product = products[item.product_id]
            price = item.price if item.price is not None else product.sell_price
            line_total = round(price * item.quantity, 2)
            items_total += line_total
            sale.items.append(SaleItem(product_id=product.id, quantity=item.quantity, price=price, total=line_total))

        sale.total = sale_total(items_total, tax, discount)
        if sale.total < 0:
            raise ValidationError("Discount cannot exceed the sale amount")

        try:
            for product_id, qty in requested.items():
                product = products[product_id]
                product.quantity -= qty
                session.add(product)
            session.add(sale)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Sale rolled back")
            raise

        session.refresh(sale)
        logger.info("Sale %s recorded: %d items, total %.2f", sale.id, len(sale.items), sale.total)
        return sale

    def update_sale(
        self,
        session: Session,
        sale: Sale,
        discount: Optional[float] = None,
        tax: Optional[float] = None,
        payment_method: Optional[str] = None,
    ) -> Sale:
        require_non_negative(discount, "Discount")
        require_non_negative(tax, "Tax")

        if discount is not None:
            sale.discount = discount
        if tax is not None:
            sale.tax = tax
        if clean_str(payment_method):
            sale.payment_method = clean_str(payment_method)

        total = sale_total(sum(i.total for i in sale.items), sale.tax, sale.discount)
        if total < 0:
            session.rollback()
            raise ValidationError("Discount cannot exceed the sale amount")
        sale.total = total

        session.add(sale)
        session.commit()
        session.refresh(sale)
        return sale

    def delete_sale(self, session: Session, sale: Sale):
        """Puts the sold quantities back on the shelf and deletes the sale (items cascade)."""
        sale_id = sale.id
        try:
            for item in sale.items:
                add_stock(session, item.product_id, item.quantity)
            session.delete(sale)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Deleting sale %s rolled back", sale_id)
            raise
        logger.info("Sale %s deleted and inventory restored", sale_id)

    def set_stock(self, session: Session, product: Product, quantity: Optional[int]) -> Product:
        if quantity is None:
            raise ValidationError("Valid quantity is required")
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")
        product = self.lock_product(session, product.id)
        product.quantity = quantity
        session.add(product)
        session.commit()
        session.refresh(product)
        return product
