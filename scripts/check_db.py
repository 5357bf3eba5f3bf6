from sqlmodel import Session, select, func, inspect

from database.session import engine, DATABASE_URL
from database.models import User, Supplier, Customer, Product, Sale, SaleItem, Expense, PurchaseOrder, PurchaseOrderItem

MODELS = [User, Supplier, Customer, Product, Sale, SaleItem, Expense, PurchaseOrder, PurchaseOrderItem]


def check_db():
    print(f" Checking DB at: {DATABASE_URL.split('@')[-1]}")
    insp = inspect(engine)
    tables = insp.get_table_names()

    with Session(engine) as session:
        for model in MODELS:
            name = model.__tablename__
            if name not in tables:
                print(f"Table: {name} MISSING")
                continue
            count = session.exec(select(func.count()).select_from(model)).one()
            columns = [c["name"] for c in insp.get_columns(name)]
            print(f"Table: {name} ({count} rows)")
            print(f"  Columns: {columns}")


if __name__ == "__main__":
    check_db()
