from typing import Optional, List
from datetime import datetime
from sqlmodel import Field, SQLModel, Relationship

# Timestamps are stored naive in server local time, like the sale dates
AUDIT_UPDATE = {"onupdate": datetime.now}


# --- User Model ---
class User(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    email: str = Field(index=True, unique=True)  # always stored lower-case
    password_hash: str  # bcrypt hash, never plain text
    role: str = Field(default="USER")  # ADMIN, MANAGER, USER
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)


# --- Supplier Model ---
class Supplier(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    balance: float = Field(default=0.0)  # what we owe the supplier
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)

    products: List["Product"] = Relationship(back_populates="supplier")
    purchase_orders: List["PurchaseOrder"] = Relationship(back_populates="supplier")


# --- Customer Model ---
class Customer(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    phone: Optional[str] = Field(default=None, index=True)
    address: Optional[str] = None
    email: Optional[str] = Field(default=None, index=True)
    balance: float = Field(default=0.0)  # what the customer owes us
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)

    sales: List["Sale"] = Relationship(back_populates="customer")


# --- Product Model ---
class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    category: str = Field(index=True)
    barcode: Optional[str] = Field(default=None, unique=True, index=True)
    quantity: int = Field(default=0)
    buy_price: float = Field(default=0.0)  # cost, used for profit and inventory value
    sell_price: float = Field(default=0.0)
    expiry_date: Optional[datetime] = None
    low_stock_threshold: int = Field(default=5)  # alert level
    supplier_id: Optional[int] = Field(default=None, foreign_key="supplier.id", ondelete="SET NULL", index=True)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)

    supplier: Optional[Supplier] = Relationship(back_populates="products")


# --- Sale Models (Header & Detail) ---
class Sale(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    date: datetime = Field(default_factory=datetime.now, index=True)
    total: float = Field(default=0.0)  # items + tax - discount
    discount: float = Field(default=0.0)
    tax: float = Field(default=0.0)
    payment_method: str = Field(default="Cash")
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)

    # Foreign Keys
    customer_id: Optional[int] = Field(default=None, foreign_key="customer.id", ondelete="SET NULL", index=True)
    customer: Optional[Customer] = Relationship(back_populates="sales")

    items: List["SaleItem"] = Relationship(back_populates="sale", cascade_delete=True)


class SaleItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    sale_id: Optional[int] = Field(default=None, foreign_key="sale.id", ondelete="CASCADE", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)

    quantity: int
    price: float  # unit price at the time of sale
    total: float  # quantity * price

    sale: Optional[Sale] = Relationship(back_populates="items")
    product: Optional[Product] = Relationship()


# --- Expense Model ---
class Expense(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    description: str
    category: str = Field(index=True)
    amount: float
    date: datetime = Field(default_factory=datetime.now, index=True)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)


# --- Purchase Order Models ---
class PurchaseOrder(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    supplier_id: int = Field(foreign_key="supplier.id", index=True)
    total_amount: float = Field(default=0.0)
    order_date: datetime = Field(default_factory=datetime.now, index=True)
    expected_date: Optional[datetime] = None
    status: str = Field(default="pending", index=True)  # pending, ordered, completed, cancelled
    notes: Optional[str] = None
    received_at: Optional[datetime] = None  # set once stock has been added
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now, sa_column_kwargs=AUDIT_UPDATE)

    supplier: Optional[Supplier] = Relationship(back_populates="purchase_orders")
    items: List["PurchaseOrderItem"] = Relationship(back_populates="purchase_order", cascade_delete=True)


class PurchaseOrderItem(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    purchase_order_id: Optional[int] = Field(default=None, foreign_key="purchaseorder.id", ondelete="CASCADE", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    quantity: int
    unit_price: float
    total_price: float

    purchase_order: Optional[PurchaseOrder] = Relationship(back_populates="items")
    product: Optional[Product] = Relationship()
