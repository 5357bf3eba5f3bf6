"""Request and response shapes for the JSON API.

Request payloads keep every field optional: required fields are checked in
the service layer so missing ones produce the same 400 envelope as any other
validation failure. Response shapes never expose ``password_hash``.
"""
from typing import Optional, List
from datetime import datetime
from sqlmodel import SQLModel


# --- Auth ---
class RegisterRequest(SQLModel):
    name: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    role: Optional[str] = None


class LoginRequest(SQLModel):
    email: Optional[str] = None
    password: Optional[str] = None


class ProfileUpdate(SQLModel):
    name: Optional[str] = None


class PasswordChange(SQLModel):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


class UserRead(SQLModel):
    id: int
    name: str
    email: str
    role: str
    created_at: datetime


# --- Suppliers ---
class SupplierPayload(SQLModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    balance: Optional[float] = None


class SupplierSummary(SQLModel):
    id: int
    name: str
    phone: Optional[str] = None


class SupplierRead(SQLModel):
    id: int
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    balance: float
    created_at: datetime
    updated_at: datetime


# --- Customers ---
class CustomerPayload(SQLModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None


class BalanceUpdate(SQLModel):
    balance: Optional[float] = None


class CustomerSummary(SQLModel):
    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class CustomerRead(SQLModel):
    id: int
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None
    email: Optional[str] = None
    balance: float
    created_at: datetime
    updated_at: datetime


# --- Products ---
class ProductPayload(SQLModel):
    name: Optional[str] = None
    category: Optional[str] = None
    barcode: Optional[str] = None
    quantity: Optional[int] = None
    buy_price: Optional[float] = None
    sell_price: Optional[float] = None
    expiry_date: Optional[datetime] = None
    supplier_id: Optional[int] = None
    low_stock_threshold: Optional[int] = None


class StockUpdate(SQLModel):
    quantity: Optional[int] = None


class ProductSummary(SQLModel):
    id: int
    name: str
    barcode: Optional[str] = None
    category: Optional[str] = None
    sell_price: float


class ProductRead(SQLModel):
    id: int
    name: str
    category: str
    barcode: Optional[str] = None
    quantity: int
    buy_price: float
    sell_price: float
    expiry_date: Optional[datetime] = None
    low_stock_threshold: int
    supplier_id: Optional[int] = None
    supplier: Optional[SupplierSummary] = None
    created_at: datetime
    updated_at: datetime


# --- Sales ---
class SaleItemInput(SQLModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None
    price: Optional[float] = None  # defaults to the product's sell price


class SaleCreate(SQLModel):
    customer_id: Optional[int] = None
    items: Optional[List[SaleItemInput]] = None
    discount: Optional[float] = 0.0
    tax: Optional[float] = 0.0
    payment_method: Optional[str] = None


class SaleUpdate(SQLModel):
    discount: Optional[float] = None
    tax: Optional[float] = None
    payment_method: Optional[str] = None


class SaleItemRead(SQLModel):
    id: int
    sale_id: int
    product_id: int
    quantity: int
    price: float
    total: float
    product: Optional[ProductSummary] = None


class SaleRead(SQLModel):
    id: int
    date: datetime
    total: float
    discount: float
    tax: float
    payment_method: str
    customer_id: Optional[int] = None
    customer: Optional[CustomerSummary] = None
    items: List[SaleItemRead] = []
    created_at: datetime


# --- Expenses ---
class ExpensePayload(SQLModel):
    description: Optional[str] = None
    category: Optional[str] = None
    amount: Optional[float] = None
    date: Optional[datetime] = None


class ExpenseRead(SQLModel):
    id: int
    description: str
    category: str
    amount: float
    date: datetime
    created_at: datetime
    updated_at: datetime


# --- Purchase Orders ---
class PurchaseOrderItemInput(SQLModel):
    product_id: Optional[int] = None
    quantity: Optional[int] = None
    unit_price: Optional[float] = None


class PurchaseOrderCreate(SQLModel):
    supplier_id: Optional[int] = None
    items: Optional[List[PurchaseOrderItemInput]] = None
    order_date: Optional[datetime] = None
    expected_date: Optional[datetime] = None
    status: Optional[str] = None
    notes: Optional[str] = None


class PurchaseOrderUpdate(SQLModel):
    status: Optional[str] = None
    order_date: Optional[datetime] = None
    expected_date: Optional[datetime] = None
    notes: Optional[str] = None


class PurchaseOrderItemRead(SQLModel):
    id: int
    product_id: int
    quantity: int
    unit_price: float
    total_price: float
    product: Optional[ProductSummary] = None


class PurchaseOrderRead(SQLModel):
    id: int
    supplier_id: int
    supplier: Optional[SupplierSummary] = None
    total_amount: float
    order_date: datetime
    expected_date: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    received_at: Optional[datetime] = None
    items: List[PurchaseOrderItemRead] = []
    created_at: datetime
