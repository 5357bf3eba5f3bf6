import logging

from sqlmodel import Session, select
from database.models import Product, Supplier, Customer

logger = logging.getLogger(__name__)

SUPPLIERS = [
    {"name": "Fresh Farms Ltd", "phone": "+254 700 111 222", "email": "orders@freshfarms.example", "address": "Industrial Area"},
    {"name": "City Beverages", "phone": "+254 700 333 444", "email": "sales@citybev.example", "address": "Westlands"},
]

CUSTOMERS = [
    {"name": "Walk-in Regular", "phone": "+254 711 000 001"},
    {"name": "Amina Hassan", "phone": "+254 711 000 002", "email": "amina@example.com", "address": "Kilimani"},
]

PRODUCTS = [
    {
        "name": "Whole Milk 1L",
        "category": "Dairy",
        "barcode": "600100000001",
        "quantity": 40,
        "buy_price": 0.8,
        "sell_price": 1.2,
        "low_stock_threshold": 10,
        "supplier": "Fresh Farms Ltd",
    },
    {
        "name": "Brown Bread",
        "category": "Bakery",
        "barcode": "600100000002",
        "quantity": 25,
        "buy_price": 1.1,
        "sell_price": 1.75,
        "low_stock_threshold": 8,
        "supplier": "Fresh Farms Ltd",
    },
    {
        "name": "Cola 500ml",
        "category": "Beverages",
        "barcode": "600100000003",
        "quantity": 120,
        "buy_price": 0.45,
        "sell_price": 0.9,
        "low_stock_threshold": 24,
        "supplier": "City Beverages",
    },
    {
        "name": "Mineral Water 1.5L",
        "category": "Beverages",
        "barcode": "600100000004",
        "quantity": 4,  # deliberately low, shows up in stock alerts
        "buy_price": 0.3,
        "sell_price": 0.7,
        "low_stock_threshold": 12,
        "supplier": "City Beverages",
    },
]


def seed_demo_data(session: Session):
    suppliers = {}
    for s_data in SUPPLIERS:
        supplier = session.exec(select(Supplier).where(Supplier.name == s_data["name"])).first()
        if not supplier:
            supplier = Supplier(**s_data)
            session.add(supplier)
            logger.info("Adding supplier: %s", s_data["name"])
        suppliers[s_data["name"]] = supplier

    for c_data in CUSTOMERS:
        # Check if exists by name
        if not session.exec(select(Customer).where(Customer.name == c_data["name"])).first():
            session.add(Customer(**c_data))
            logger.info("Adding customer: %s", c_data["name"])

    session.flush()

    for p_data in PRODUCTS:
        # Check if exists by barcode
        existing = session.exec(select(Product).where(Product.barcode == p_data["barcode"])).first()
        if not existing:
            data = dict(p_data)
            supplier = suppliers[data.pop("supplier")]
            session.add(Product(**data, supplier_id=supplier.id))
            logger.info("Adding product: %s", p_data["name"])

    session.commit()
