import logging
import math
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Depends, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select, func, col, or_
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from database.session import create_db_and_tables, get_session, engine
from database.models import Product, Sale, SaleItem, User, Customer, Supplier, Expense, PurchaseOrder, PurchaseOrderItem
from database.schemas import (
    RegisterRequest, LoginRequest, ProfileUpdate, PasswordChange, UserRead,
    SupplierPayload, SupplierRead,
    CustomerPayload, CustomerRead, BalanceUpdate,
    ProductPayload, ProductRead, StockUpdate,
    SaleCreate, SaleUpdate, SaleRead,
    ExpensePayload, ExpenseRead,
    PurchaseOrderCreate, PurchaseOrderUpdate, PurchaseOrderRead,
)
from database.seed_data import seed_demo_data
from services.auth_service import AuthService
from services.errors import POSError, ValidationError, AuthenticationError, PermissionDenied, NotFoundError, ConflictError
from services.export_service import products_workbook, sales_workbook, XLSX_MEDIA_TYPE
from services.purchase_service import PurchaseOrderService
from services.stock_service import StockService
from services.validation import clean_str, require_non_negative, check_contact
from services import report_service

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("pos")

# Setup
stock_service = StockService()
purchase_service = PurchaseOrderService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # On startup
    create_db_and_tables()
    with Session(engine) as session:
        AuthService.create_default_admin(session)
        if config.DEMO_MODE:
            seed_demo_data(session)
            logger.info("Demo mode: in-memory database seeded with sample data")
    logger.info("%s %s started (%s)", config.APP_NAME, config.APP_VERSION, config.APP_ENV)
    yield


app = FastAPI(title=config.APP_NAME, version=config.APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# --- Error Handling ---

def error_response(status_code: int, message: str, errors=None, headers=None) -> JSONResponse:
    content = {"success": False, "message": message}
    if errors:
        content["errors"] = errors
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(POSError)
async def pos_error_handler(request: Request, exc: POSError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationError) else None
    return error_response(exc.status_code, exc.message, exc.errors, headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in e["loc"][1:]), "message": e["msg"]}
        for e in exc.errors()
    ]
    return error_response(400, "Invalid request data", errors)


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return error_response(409, "Duplicate or conflicting value")


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    # Details only leak outside in development
    errors = [str(exc)] if config.is_development() else None
    return error_response(500, "Server Error", errors)


# --- Dependencies ---

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User:
    if not credentials:
        raise AuthenticationError("Not authorized, no token")
    user = session.get(User, AuthService.decode_access_token(credentials.credentials))
    if not user:
        raise AuthenticationError("Not authorized, user not found")
    return user


def require_auth(user: User = Depends(get_current_user)) -> User:
    return user


def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> Optional[User]:
    if not credentials:
        return None
    return get_current_user(credentials, session)


def require_role(*roles: str):
    def checker(user: User = Depends(get_current_user)) -> User:
        if user.role not in roles:
            raise PermissionDenied(f"User role {user.role} is not authorized to access this route")
        return user
    return checker


require_manager = require_role("ADMIN", "MANAGER")


# --- Helpers ---

def get_or_404(session: Session, model, id: int, label: str):
    obj = session.get(model, id)
    if not obj:
        raise NotFoundError(f"{label} not found")
    return obj


def paginate(session: Session, statement, page: int, limit: int):
    total = session.exec(select(func.count()).select_from(statement.subquery())).one()
    rows = session.exec(statement.offset((page - 1) * limit).limit(limit)).all()
    return rows, total


def page_response(rows, total: int, page: int, limit: int, schema=None) -> dict:
    return {
        "success": True,
        "count": len(rows),
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit),
        "data": [schema.model_validate(r) for r in rows] if schema else rows,
    }


def order_clause(model, sort_by: str, sort_order: str, allowed):
    if sort_by not in allowed:
        raise ValidationError(f"Cannot sort by '{sort_by}'. Allowed: {', '.join(allowed)}")
    column = getattr(model, sort_by)
    return column.desc() if sort_order == "desc" else column.asc()


def ensure_barcode_free(session: Session, barcode: Optional[str], product_id: Optional[int] = None):
    if not barcode:
        return
    existing = session.exec(select(Product).where(Product.barcode == barcode)).first()
    if existing and existing.id != product_id:
        raise ConflictError("Product with this barcode already exists")


def ensure_customer_email_free(session: Session, email: Optional[str], customer_id: Optional[int] = None):
    if not email:
        return
    existing = session.exec(select(Customer).where(func.lower(Customer.email) == email.lower())).first()
    if existing and existing.id != customer_id:
        raise ConflictError("Customer with this email already exists")


PAGE = Query(1, ge=1)
LIMIT = Query(10, ge=1, le=100)
SORT_ORDER = Query("asc", pattern="^(asc|desc)$")


# --- Service Routes ---

@app.get("/")
def root():
    return {
        "message": f"{config.APP_NAME} server",
        "status": "Running",
        "timestamp": datetime.now().isoformat(),
        "endpoints": ["/health", "/api/auth", "/api/products", "/api/customers", "/api/suppliers",
                      "/api/sales", "/api/expenses", "/api/purchase-orders", "/api/reports"],
    }


@app.get("/health")
@app.head("/health")
def health_check():
    return {
        "status": "OK",
        "message": f"{config.APP_NAME} is running",
        "timestamp": datetime.now().isoformat(),
        "environment": config.APP_ENV,
        "version": config.APP_VERSION,
        "demo_mode": config.DEMO_MODE,
    }


@app.get("/api/status")
def api_status():
    return {
        "status": "OK",
        "message": "API is accessible",
        "timestamp": datetime.now().isoformat(),
        "environment": config.APP_ENV,
        "version": config.APP_VERSION,
    }


# --- Auth ---

@app.post("/api/auth/register", status_code=201)
def register(
    data: RegisterRequest,
    session: Session = Depends(get_session),
    requester: Optional[User] = Depends(get_optional_user),
):
    user = AuthService.register(session, data.name, data.email, data.password, data.role, created_by=requester)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": {"token": AuthService.create_access_token(user.id), "user": UserRead.model_validate(user)},
    }


@app.post("/api/auth/login")
def login(data: LoginRequest, session: Session = Depends(get_session)):
    user = AuthService.authenticate(session, data.email, data.password)
    return {
        "success": True,
        "message": "Login successful",
        "data": {"token": AuthService.create_access_token(user.id), "user": UserRead.model_validate(user)},
    }


@app.get("/api/auth/me")
def get_me(user: User = Depends(require_auth)):
    return {"success": True, "data": UserRead.model_validate(user)}


@app.put("/api/auth/profile")
def update_profile(data: ProfileUpdate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    user = AuthService.update_profile(session, user, data.name)
    return {"success": True, "message": "Profile updated successfully", "data": UserRead.model_validate(user)}


@app.put("/api/auth/change-password")
def change_password(data: PasswordChange, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    AuthService.change_password(session, user, data.current_password, data.new_password)
    return {"success": True, "message": "Password changed successfully"}


# --- Products ---

@app.get("/api/products")
def get_products_api(
    category: Optional[str] = None,
    supplier_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(Product)
    if category and category != "all":
        statement = statement.where(Product.category == category)
    if supplier_id is not None:
        statement = statement.where(Product.supplier_id == supplier_id)
    if clean_str(search):
        term = f"%{search.strip()}%"
        statement = statement.where(or_(
            col(Product.name).ilike(term),
            col(Product.barcode).ilike(term),
            col(Product.category).ilike(term),
        ))
    statement = statement.order_by(Product.created_at.desc(), Product.id.desc())
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, ProductRead)


@app.get("/api/products/low-stock")
def get_low_stock_products(
    threshold: int = Query(5, ge=0),
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    products = session.exec(
        select(Product).where(Product.quantity <= threshold).order_by(Product.quantity.asc())
    ).all()
    return {
        "success": True,
        "count": len(products),
        "threshold": threshold,
        "data": [ProductRead.model_validate(p) for p in products],
    }


@app.get("/api/products/export")
def export_products_api(session: Session = Depends(get_session), user: User = Depends(require_auth)):
    products = session.exec(select(Product).order_by(Product.name)).all()
    output = products_workbook(products)
    headers = {"Content-Disposition": 'attachment; filename="products_export.xlsx"'}
    return StreamingResponse(output, headers=headers, media_type=XLSX_MEDIA_TYPE)


@app.get("/api/products/{id}")
def get_product_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    product = get_or_404(session, Product, id, "Product")
    return {"success": True, "data": ProductRead.model_validate(product)}


@app.get("/api/products/{id}/barcode")
def get_product_barcode(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    product = get_or_404(session, Product, id, "Product")
    return Response(content=stock_service.generate_barcode(product), media_type="image/svg+xml")


@app.post("/api/products", status_code=201)
def create_product_api(data: ProductPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    name = clean_str(data.name)
    category = clean_str(data.category)
    if not name or not category:
        raise ValidationError("Product name and category are required")
    if data.buy_price is None or data.sell_price is None:
        raise ValidationError("Valid buy and sell prices are required")
    require_non_negative(data.buy_price, "Buy price")
    require_non_negative(data.sell_price, "Sell price")
    require_non_negative(data.quantity, "Quantity")
    require_non_negative(data.low_stock_threshold, "Low stock threshold")

    barcode = clean_str(data.barcode)
    ensure_barcode_free(session, barcode)
    if data.supplier_id is not None:
        get_or_404(session, Supplier, data.supplier_id, "Supplier")

    product = Product(
        name=name,
        category=category,
        barcode=barcode,
        quantity=data.quantity or 0,
        buy_price=data.buy_price,
        sell_price=data.sell_price,
        expiry_date=data.expiry_date,
        supplier_id=data.supplier_id,
        low_stock_threshold=data.low_stock_threshold if data.low_stock_threshold is not None else 5,
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    return {"success": True, "message": "Product created successfully", "data": ProductRead.model_validate(product)}


@app.put("/api/products/{id}")
def update_product_api(id: int, data: ProductPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    product = get_or_404(session, Product, id, "Product")
    updates = data.model_dump(exclude_unset=True)

    for field in ("name", "category"):
        if field in updates:
            updates[field] = clean_str(updates[field])
            if not updates[field]:
                raise ValidationError(f"Product {field} cannot be empty")
    if "barcode" in updates:
        updates["barcode"] = clean_str(updates["barcode"])
        ensure_barcode_free(session, updates["barcode"], product.id)
    for field, label in (("buy_price", "Buy price"), ("sell_price", "Sell price"),
                         ("quantity", "Quantity"), ("low_stock_threshold", "Low stock threshold")):
        if field in updates and updates[field] is None:
            raise ValidationError(f"{label} cannot be empty")
        require_non_negative(updates.get(field), label)
    if updates.get("supplier_id") is not None:
        get_or_404(session, Supplier, updates["supplier_id"], "Supplier")

    product.sqlmodel_update(updates)
    session.add(product)
    session.commit()
    session.refresh(product)
    return {"success": True, "message": "Product updated successfully", "data": ProductRead.model_validate(product)}


@app.put("/api/products/{id}/stock")
def update_stock_api(id: int, data: StockUpdate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    product = get_or_404(session, Product, id, "Product")
    product = stock_service.set_stock(session, product, data.quantity)
    return {"success": True, "message": "Stock updated successfully", "data": ProductRead.model_validate(product)}


@app.delete("/api/products/{id}")
def delete_product_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_manager)):
    product = get_or_404(session, Product, id, "Product")
    sold = session.exec(select(func.count(SaleItem.id)).where(SaleItem.product_id == id)).one()
    ordered = session.exec(select(func.count(PurchaseOrderItem.id)).where(PurchaseOrderItem.product_id == id)).one()
    if sold or ordered:
        raise ValidationError("Cannot delete product with existing sales or purchase orders")
    session.delete(product)
    session.commit()
    return {"success": True, "message": "Product deleted successfully"}


# --- Customers ---

CUSTOMER_SORT_FIELDS = ("name", "email", "phone", "balance", "created_at")


@app.get("/api/customers")
def get_customers_api(
    search: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = SORT_ORDER,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(Customer)
    if clean_str(search):
        term = f"%{search.strip()}%"
        statement = statement.where(or_(
            col(Customer.name).ilike(term),
            col(Customer.phone).ilike(term),
            col(Customer.email).ilike(term),
        ))
    statement = statement.order_by(order_clause(Customer, sort_by, sort_order, CUSTOMER_SORT_FIELDS))
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, CustomerRead)


@app.get("/api/customers/{id}")
def get_customer_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    customer = get_or_404(session, Customer, id, "Customer")
    return {"success": True, "data": CustomerRead.model_validate(customer)}


@app.get("/api/customers/{id}/sales")
def get_customer_sales_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    get_or_404(session, Customer, id, "Customer")
    sales = session.exec(select(Sale).where(Sale.customer_id == id).order_by(Sale.date.desc())).all()
    return {"success": True, "count": len(sales), "data": [SaleRead.model_validate(s) for s in sales]}


@app.post("/api/customers", status_code=201)
def create_customer_api(data: CustomerPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    name = clean_str(data.name)
    if not name:
        raise ValidationError("Customer name is required")
    email = clean_str(data.email)
    phone = clean_str(data.phone)
    check_contact(email, phone)
    ensure_customer_email_free(session, email)

    customer = Customer(
        name=name,
        email=email.lower() if email else None,
        phone=phone,
        address=clean_str(data.address),
        balance=0.0,
    )
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return {"success": True, "message": "Customer created successfully", "data": CustomerRead.model_validate(customer)}


@app.put("/api/customers/{id}")
def update_customer_api(id: int, data: CustomerPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    customer = get_or_404(session, Customer, id, "Customer")
    updates = {k: clean_str(v) for k, v in data.model_dump(exclude_unset=True).items()}
    if "name" in updates and not updates["name"]:
        raise ValidationError("Customer name cannot be empty")
    check_contact(updates.get("email"), updates.get("phone"))
    if updates.get("email"):
        ensure_customer_email_free(session, updates["email"], customer.id)
        updates["email"] = updates["email"].lower()

    customer.sqlmodel_update(updates)
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return {"success": True, "message": "Customer updated successfully", "data": CustomerRead.model_validate(customer)}


@app.put("/api/customers/{id}/balance")
def update_customer_balance_api(id: int, data: BalanceUpdate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    customer = get_or_404(session, Customer, id, "Customer")
    if data.balance is None:
        raise ValidationError("Valid balance is required")
    customer.balance = data.balance
    session.add(customer)
    session.commit()
    session.refresh(customer)
    return {"success": True, "message": "Customer balance updated successfully", "data": CustomerRead.model_validate(customer)}


@app.delete("/api/customers/{id}")
def delete_customer_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_manager)):
    customer = get_or_404(session, Customer, id, "Customer")
    if session.exec(select(func.count(Sale.id)).where(Sale.customer_id == id)).one():
        raise ValidationError("Cannot delete customer with existing sales records")
    session.delete(customer)
    session.commit()
    return {"success": True, "message": "Customer deleted successfully"}


# --- Suppliers ---

SUPPLIER_SORT_FIELDS = ("name", "email", "phone", "balance", "created_at")


def supplier_payload(supplier: Supplier) -> dict:
    data = SupplierRead.model_validate(supplier).model_dump()
    data["product_count"] = len(supplier.products)
    data["purchase_order_count"] = len(supplier.purchase_orders)
    return data


@app.get("/api/suppliers")
def get_suppliers_api(
    search: Optional[str] = None,
    sort_by: str = "name",
    sort_order: str = SORT_ORDER,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(Supplier)
    if clean_str(search):
        term = f"%{search.strip()}%"
        statement = statement.where(or_(
            col(Supplier.name).ilike(term),
            col(Supplier.phone).ilike(term),
            col(Supplier.email).ilike(term),
        ))
    statement = statement.order_by(order_clause(Supplier, sort_by, sort_order, SUPPLIER_SORT_FIELDS))
    rows, total = paginate(session, statement, page, limit)
    response = page_response(rows, total, page, limit)
    response["data"] = [supplier_payload(s) for s in rows]
    return response


@app.get("/api/suppliers/{id}")
def get_supplier_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    supplier = get_or_404(session, Supplier, id, "Supplier")
    return {"success": True, "data": supplier_payload(supplier)}


@app.get("/api/suppliers/{id}/products")
def get_supplier_products_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    get_or_404(session, Supplier, id, "Supplier")
    products = session.exec(select(Product).where(Product.supplier_id == id).order_by(Product.name)).all()
    return {"success": True, "count": len(products), "data": [ProductRead.model_validate(p) for p in products]}


@app.get("/api/suppliers/{id}/purchase-orders")
def get_supplier_purchase_orders_api(
    id: int,
    status: Optional[str] = None,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    get_or_404(session, Supplier, id, "Supplier")
    statement = select(PurchaseOrder).where(PurchaseOrder.supplier_id == id)
    if status:
        statement = statement.where(PurchaseOrder.status == status)
    statement = statement.order_by(PurchaseOrder.order_date.desc())
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, PurchaseOrderRead)


@app.post("/api/suppliers", status_code=201)
def create_supplier_api(data: SupplierPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    name = clean_str(data.name)
    if not name:
        raise ValidationError("Please provide supplier name")
    email = clean_str(data.email)
    phone = clean_str(data.phone)
    check_contact(email, phone)

    supplier = Supplier(
        name=name,
        email=email,
        phone=phone,
        address=clean_str(data.address),
        balance=data.balance or 0.0,
    )
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return {"success": True, "message": "Supplier created successfully", "data": supplier_payload(supplier)}


@app.put("/api/suppliers/{id}")
def update_supplier_api(id: int, data: SupplierPayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    supplier = get_or_404(session, Supplier, id, "Supplier")
    updates = data.model_dump(exclude_unset=True)
    for field in ("name", "phone", "address", "email"):
        if field in updates:
            updates[field] = clean_str(updates[field])
    if "name" in updates and not updates["name"]:
        raise ValidationError("Supplier name cannot be empty")
    if "balance" in updates and updates["balance"] is None:
        updates["balance"] = 0.0
    check_contact(updates.get("email"), updates.get("phone"))

    supplier.sqlmodel_update(updates)
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return {"success": True, "message": "Supplier updated successfully", "data": supplier_payload(supplier)}


@app.delete("/api/suppliers/{id}")
def delete_supplier_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_manager)):
    supplier = get_or_404(session, Supplier, id, "Supplier")
    if supplier.products or supplier.purchase_orders:
        raise ValidationError("Cannot delete supplier with existing products or purchase orders")
    session.delete(supplier)
    session.commit()
    return {"success": True, "message": "Supplier deleted successfully"}


# --- Expenses ---

EXPENSE_SORT_FIELDS = ("date", "amount", "category", "description", "created_at")


@app.get("/api/expenses")
def get_expenses_api(
    category: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    sort_by: str = "date",
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(Expense)
    if category:
        statement = statement.where(Expense.category == category)
    if start_date:
        statement = statement.where(Expense.date >= start_date)
    if end_date:
        statement = statement.where(Expense.date <= end_date)
    statement = statement.order_by(order_clause(Expense, sort_by, sort_order, EXPENSE_SORT_FIELDS))
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, ExpenseRead)


@app.get("/api/expenses/report")
def get_expense_report_api(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    report = report_service.expense_report(session, start_date, end_date)
    report["expenses"] = [ExpenseRead.model_validate(e) for e in report["expenses"]]
    return {"success": True, "data": report}


@app.get("/api/expenses/{id}")
def get_expense_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    expense = get_or_404(session, Expense, id, "Expense")
    return {"success": True, "data": ExpenseRead.model_validate(expense)}


@app.post("/api/expenses", status_code=201)
def create_expense_api(data: ExpensePayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    description = clean_str(data.description)
    category = clean_str(data.category)
    if not description or not category or data.amount is None:
        raise ValidationError("Please provide description, category, and amount")
    require_non_negative(data.amount, "Amount")

    expense = Expense(description=description, category=category, amount=data.amount, date=data.date or datetime.now())
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return {"success": True, "message": "Expense created successfully", "data": ExpenseRead.model_validate(expense)}


@app.put("/api/expenses/{id}")
def update_expense_api(id: int, data: ExpensePayload, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    expense = get_or_404(session, Expense, id, "Expense")
    updates = data.model_dump(exclude_unset=True)
    for field in ("description", "category"):
        if field in updates:
            updates[field] = clean_str(updates[field])
            if not updates[field]:
                raise ValidationError(f"Expense {field} cannot be empty")
    if "amount" in updates:
        if updates["amount"] is None:
            raise ValidationError("Amount must be a valid number")
        require_non_negative(updates["amount"], "Amount")
    if "date" in updates and updates["date"] is None:
        del updates["date"]

    expense.sqlmodel_update(updates)
    session.add(expense)
    session.commit()
    session.refresh(expense)
    return {"success": True, "message": "Expense updated successfully", "data": ExpenseRead.model_validate(expense)}


@app.delete("/api/expenses/{id}")
def delete_expense_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    expense = get_or_404(session, Expense, id, "Expense")
    session.delete(expense)
    session.commit()
    return {"success": True, "message": "Expense deleted successfully"}


# --- Sales ---

@app.get("/api/sales")
def get_sales_api(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    customer_id: Optional[int] = None,
    payment_method: Optional[str] = None,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(Sale)
    if start_date:
        statement = statement.where(Sale.date >= start_date)
    if end_date:
        statement = statement.where(Sale.date <= end_date)
    if customer_id is not None:
        statement = statement.where(Sale.customer_id == customer_id)
    if payment_method:
        statement = statement.where(Sale.payment_method == payment_method)
    statement = statement.order_by(Sale.date.desc(), Sale.id.desc())
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, SaleRead)


@app.get("/api/sales/report")
def get_sales_report_api(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    return {"success": True, "data": report_service.sales_summary(session, start_date, end_date)}


@app.get("/api/sales/{id}")
def get_sale_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    sale = get_or_404(session, Sale, id, "Sale")
    return {"success": True, "data": SaleRead.model_validate(sale)}


@app.post("/api/sales", status_code=201)
def create_sale_api(data: SaleCreate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    sale = stock_service.process_sale(
        session,
        items_data=data.items,
        customer_id=data.customer_id,
        discount=data.discount,
        tax=data.tax,
        payment_method=data.payment_method,
    )
    return {"success": True, "message": "Sale created successfully", "data": SaleRead.model_validate(sale)}


@app.put("/api/sales/{id}")
def update_sale_api(id: int, data: SaleUpdate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    sale = get_or_404(session, Sale, id, "Sale")
    sale = stock_service.update_sale(session, sale, data.discount, data.tax, data.payment_method)
    return {"success": True, "message": "Sale updated successfully", "data": SaleRead.model_validate(sale)}


@app.delete("/api/sales/{id}")
def delete_sale_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    sale = get_or_404(session, Sale, id, "Sale")
    stock_service.delete_sale(session, sale)
    return {"success": True, "message": "Sale deleted successfully and inventory restored"}


# --- Purchase Orders ---

@app.get("/api/purchase-orders")
def get_purchase_orders_api(
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = PAGE,
    limit: int = LIMIT,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    statement = select(PurchaseOrder)
    if status:
        statement = statement.where(PurchaseOrder.status == status)
    if supplier_id is not None:
        statement = statement.where(PurchaseOrder.supplier_id == supplier_id)
    if start_date:
        statement = statement.where(PurchaseOrder.order_date >= start_date)
    if end_date:
        statement = statement.where(PurchaseOrder.order_date <= end_date)
    statement = statement.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc())
    rows, total = paginate(session, statement, page, limit)
    return page_response(rows, total, page, limit, PurchaseOrderRead)


@app.get("/api/purchase-orders/stats")
def get_purchase_order_stats_api(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    return {"success": True, "data": purchase_service.stats(session, start_date, end_date)}


@app.get("/api/purchase-orders/{id}")
def get_purchase_order_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    order = get_or_404(session, PurchaseOrder, id, "Purchase order")
    return {"success": True, "data": PurchaseOrderRead.model_validate(order)}


@app.post("/api/purchase-orders", status_code=201)
def create_purchase_order_api(data: PurchaseOrderCreate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    order = purchase_service.create(
        session,
        supplier_id=data.supplier_id,
        items_data=data.items,
        order_date=data.order_date,
        expected_date=data.expected_date,
        status=data.status,
        notes=data.notes,
    )
    return {"success": True, "message": "Purchase order created successfully", "data": PurchaseOrderRead.model_validate(order)}


@app.put("/api/purchase-orders/{id}")
def update_purchase_order_api(id: int, data: PurchaseOrderUpdate, session: Session = Depends(get_session), user: User = Depends(require_auth)):
    order = get_or_404(session, PurchaseOrder, id, "Purchase order")
    order = purchase_service.update(session, order, data.status, data.order_date, data.expected_date, data.notes)
    return {"success": True, "message": "Purchase order updated successfully", "data": PurchaseOrderRead.model_validate(order)}


@app.delete("/api/purchase-orders/{id}")
def delete_purchase_order_api(id: int, session: Session = Depends(get_session), user: User = Depends(require_manager)):
    order = get_or_404(session, PurchaseOrder, id, "Purchase order")
    purchase_service.delete(session, order)
    return {"success": True, "message": "Purchase order deleted successfully"}


# --- Reports ---

@app.get("/api/reports")
def get_reports_overview(session: Session = Depends(get_session), user: User = Depends(require_auth)):
    return {"success": True, "data": report_service.overview(session)}


@app.get("/api/reports/dashboard")
def get_dashboard_stats(session: Session = Depends(get_session), user: User = Depends(require_auth)):
    return {"success": True, "data": report_service.dashboard(session)}


@app.get("/api/reports/sales")
def get_sales_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    report = report_service.sales_report(session, start_date, end_date)
    report["sales"] = [SaleRead.model_validate(s) for s in report["sales"]]
    return {"success": True, "data": report}


@app.get("/api/reports/sales/export")
def export_sales_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    start_date, end_date = report_service.resolve_period(start_date, end_date)
    output = sales_workbook(report_service.sales_between(session, start_date, end_date))
    filename = f"sales_{start_date.strftime('%Y%m%d')}_{end_date.strftime('%Y%m%d')}.xlsx"
    headers = {"Content-Disposition": f'attachment; filename="{filename}"'}
    return StreamingResponse(output, headers=headers, media_type=XLSX_MEDIA_TYPE)


@app.get("/api/reports/inventory")
def get_inventory_report(session: Session = Depends(get_session), user: User = Depends(require_auth)):
    return {"success": True, "data": report_service.inventory_report(session)}


@app.get("/api/reports/expenses")
def get_expenses_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    report = report_service.expense_report(session, start_date, end_date)
    report["expenses"] = [ExpenseRead.model_validate(e) for e in report["expenses"]]
    return {"success": True, "data": report}


@app.get("/api/reports/profit-loss")
def get_profit_loss_report(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    session: Session = Depends(get_session),
    user: User = Depends(require_auth),
):
    return {"success": True, "data": report_service.profit_loss(session, start_date, end_date)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000)
