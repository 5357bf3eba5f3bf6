"""
Reporting queries.

Reports are built by loading the rows of the requested period and
aggregating in Python. Volumes for a single shop stay small enough for this;
the SQL side only does counts and sums where that is simpler.
"""
from collections import defaultdict
from datetime import datetime, timedelta, date
from typing import Optional, List, Tuple

from sqlmodel import Session, select, func

from database.models import Product, Sale, SaleItem, Customer, Supplier, Expense

DEFAULT_PERIOD_DAYS = 30
TOP_PRODUCTS = 10


def resolve_period(start_date: Optional[datetime], end_date: Optional[datetime]) -> Tuple[datetime, datetime]:
    end_date = end_date or datetime.now()
    start_date = start_date or (end_date - timedelta(days=DEFAULT_PERIOD_DAYS))
    return start_date, end_date


def describe_period(start_date: datetime, end_date: datetime) -> dict:
    return {
        "start_date": start_date,
        "end_date": end_date,
        "duration": f"{(end_date - start_date).days} days",
    }


def today_bounds() -> Tuple[datetime, datetime]:
    start = datetime.combine(date.today(), datetime.min.time())
    return start, start + timedelta(days=1)


def sales_between(session: Session, start_date: Optional[datetime], end_date: Optional[datetime]) -> List[Sale]:
    statement = select(Sale)
    if start_date:
        statement = statement.where(Sale.date >= start_date)
    if end_date:
        statement = statement.where(Sale.date <= end_date)
    return session.exec(statement.order_by(Sale.date.desc())).all()


def expenses_between(session: Session, start_date: Optional[datetime], end_date: Optional[datetime]) -> List[Expense]:
    statement = select(Expense)
    if start_date:
        statement = statement.where(Expense.date >= start_date)
    if end_date:
        statement = statement.where(Expense.date <= end_date)
    return session.exec(statement.order_by(Expense.date.desc())).all()


def item_profit(item: SaleItem) -> float:
    cost = item.product.buy_price if item.product else 0.0
    return (item.price - cost) * item.quantity


def cost_of_goods(sales: List[Sale]) -> float:
    return sum((i.product.buy_price if i.product else 0.0) * i.quantity for s in sales for i in s.items)


def overview(session: Session) -> dict:
    revenue = session.exec(select(func.sum(Sale.total))).one() or 0.0
    expenses = session.exec(select(func.sum(Expense.amount))).one() or 0.0
    return {
        "products": session.exec(select(func.count(Product.id))).one(),
        "customers": session.exec(select(func.count(Customer.id))).one(),
        "suppliers": session.exec(select(func.count(Supplier.id))).one(),
        "sales": session.exec(select(func.count(Sale.id))).one(),
        "total_revenue": round(float(revenue), 2),
        "total_expenses": round(float(expenses), 2),
        "net": round(float(revenue) - float(expenses), 2),
    }


def dashboard(session: Session) -> dict:
    start, end = today_bounds()
    today_sales = session.exec(select(Sale).where(Sale.date >= start, Sale.date < end)).all()
    today_expenses = session.exec(select(Expense).where(Expense.date >= start, Expense.date < end)).all()

    total_products = session.exec(select(func.count(Product.id))).one()
    low_stock = session.exec(
        select(func.count(Product.id)).where(Product.quantity <= Product.low_stock_threshold)
    ).one()
    customers_with_debt = session.exec(select(func.count(Customer.id)).where(Customer.balance > 0)).one()

    return {
        "sales": {
            "today_total": round(sum(s.total for s in today_sales), 2),
            "today_tax": round(sum(s.tax for s in today_sales), 2),
            "today_discount": round(sum(s.discount for s in today_sales), 2),
            "today_profit": round(sum(item_profit(i) for s in today_sales for i in s.items), 2),
            "transaction_count": len(today_sales),
        },
        "inventory": {
            "total_products": total_products,
            "low_stock_products": low_stock,
        },
        "customers": {
            "with_debt": customers_with_debt,
        },
        "expenses": {
            "today_total": round(sum(e.amount for e in today_expenses), 2),
            "transaction_count": len(today_expenses),
        },
    }


def sales_summary(session: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
    """Headline numbers plus a per-day series of the last seven days."""
    sales = sales_between(session, start_date, end_date)
    revenue = sum(s.total for s in sales)
    today_start, today_end = today_bounds()

    week_start = today_start - timedelta(days=6)
    by_day = defaultdict(lambda: {"revenue": 0.0, "sales": 0})
    for sale in session.exec(select(Sale).where(Sale.date >= week_start)).all():
        day = by_day[sale.date.strftime("%Y-%m-%d")]
        day["revenue"] += sale.total
        day["sales"] += 1

    last_7_days = []
    for offset in range(7):
        key = (week_start + timedelta(days=offset)).strftime("%Y-%m-%d")
        last_7_days.append({"date": key, "revenue": round(by_day[key]["revenue"], 2), "sales": by_day[key]["sales"]})

    return {
        "summary": {
            "total_sales": len(sales),
            "total_revenue": round(revenue, 2),
            "total_profit": round(sum(item_profit(i) for s in sales for i in s.items), 2),
            "total_items_sold": sum(i.quantity for s in sales for i in s.items),
            "today_sales": session.exec(
                select(func.count(Sale.id)).where(Sale.date >= today_start, Sale.date < today_end)
            ).one(),
            "avg_order_value": round(revenue / len(sales), 2) if sales else 0.0,
        },
        "sales_last_7_days": last_7_days,
    }


def sales_report(session: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
    start_date, end_date = resolve_period(start_date, end_date)
    sales = sales_between(session, start_date, end_date)

    total_sales = sum(s.total for s in sales)
    payment_methods = defaultdict(float)
    categories = defaultdict(float)
    products = {}
    for sale in sales:
        payment_methods[sale.payment_method] += sale.total
        for item in sale.items:
            category = item.product.category if item.product else "Unknown"
            categories[category] += item.total
            entry = products.setdefault(item.product_id, {
                "id": item.product_id,
                "name": item.product.name if item.product else f"Product {item.product_id}",
                "total_sales": 0.0,
                "quantity_sold": 0,
            })
            entry["total_sales"] += item.total
            entry["quantity_sold"] += item.quantity

    top_products = sorted(products.values(), key=lambda p: p["total_sales"], reverse=True)[:TOP_PRODUCTS]

    return {
        "period": describe_period(start_date, end_date),
        "summary": {
            "total_sales": round(total_sales, 2),
            "total_tax": round(sum(s.tax for s in sales), 2),
            "total_discount": round(sum(s.discount for s in sales), 2),
            "total_items": sum(len(s.items) for s in sales),
            "transaction_count": len(sales),
            "average_order_value": round(total_sales / len(sales), 2) if sales else 0.0,
        },
        "payment_methods": {k: round(v, 2) for k, v in payment_methods.items()},
        "categories": {k: round(v, 2) for k, v in categories.items()},
        "top_products": top_products,
        "sales": sales,
    }


def inventory_report(session: Session) -> dict:
    products = session.exec(select(Product).order_by(Product.name)).all()

    category_summary = {}
    supplier_summary = {}
    for product in products:
        value = product.quantity * product.buy_price
        supplier_name = product.supplier.name if product.supplier else "Unknown"

        cat = category_summary.setdefault(product.category, {
            "count": 0, "total_quantity": 0, "inventory_value": 0.0, "suppliers": [],
        })
        cat["count"] += 1
        cat["total_quantity"] += product.quantity
        cat["inventory_value"] += value
        if product.supplier and product.supplier.name not in cat["suppliers"]:
            cat["suppliers"].append(product.supplier.name)

        sup = supplier_summary.setdefault(supplier_name, {"count": 0, "total_quantity": 0, "inventory_value": 0.0})
        sup["count"] += 1
        sup["total_quantity"] += product.quantity
        sup["inventory_value"] += value

    low_stock = [p for p in products if p.quantity <= p.low_stock_threshold]

    return {
        "summary": {
            "total_products": len(products),
            "total_inventory_value": round(sum(p.quantity * p.buy_price for p in products), 2),
            "total_quantity": sum(p.quantity for p in products),
            "low_stock_count": len(low_stock),
        },
        "category_summary": category_summary,
        "supplier_summary": supplier_summary,
        "low_stock_products": [
            {
                "id": p.id,
                "name": p.name,
                "category": p.category,
                "current_stock": p.quantity,
                "low_stock_threshold": p.low_stock_threshold,
                "supplier": p.supplier.name if p.supplier else None,
            }
            for p in low_stock
        ],
        "products": [
            {
                "id": p.id,
                "name": p.name,
                "category": p.category,
                "quantity": p.quantity,
                "buy_price": p.buy_price,
                "sell_price": p.sell_price,
                "inventory_value": round(p.quantity * p.buy_price, 2),
                "supplier": p.supplier.name if p.supplier else None,
            }
            for p in products
        ],
    }


def expense_report(session: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
    start_date, end_date = resolve_period(start_date, end_date)
    expenses = expenses_between(session, start_date, end_date)
    total = sum(e.amount for e in expenses)

    categories = defaultdict(float)
    monthly = {}
    for expense in expenses:
        categories[expense.category] += expense.amount
        month = monthly.setdefault(expense.date.strftime("%Y-%m"), {"total": 0.0, "count": 0, "categories": defaultdict(float)})
        month["total"] += expense.amount
        month["count"] += 1
        month["categories"][expense.category] += expense.amount

    return {
        "period": describe_period(start_date, end_date),
        "summary": {
            "total_expenses": round(total, 2),
            "transaction_count": len(expenses),
            "average_expense": round(total / len(expenses), 2) if expenses else 0.0,
        },
        "categories": {k: round(v, 2) for k, v in categories.items()},
        "monthly_trends": {
            k: {
                "total": round(v["total"], 2),
                "count": v["count"],
                "categories": {c: round(amount, 2) for c, amount in v["categories"].items()},
            }
            for k, v in monthly.items()
        },
        "expenses": expenses,
    }


def profit_loss(session: Session, start_date: Optional[datetime] = None, end_date: Optional[datetime] = None) -> dict:
    start_date, end_date = resolve_period(start_date, end_date)
    sales = sales_between(session, start_date, end_date)
    expenses = expenses_between(session, start_date, end_date)

    revenue = sum(s.total for s in sales)
    cogs = cost_of_goods(sales)
    gross_profit = revenue - cogs
    total_expenses = sum(e.amount for e in expenses)
    net_profit = gross_profit - total_expenses

    return {
        "period": describe_period(start_date, end_date),
        "revenue": {
            "total_revenue": round(revenue, 2),
            "total_tax": round(sum(s.tax for s in sales), 2),
            "total_discount": round(sum(s.discount for s in sales), 2),
            "transaction_count": len(sales),
        },
        "costs": {
            "cost_of_goods_sold": round(cogs, 2),
            "total_expenses": round(total_expenses, 2),
        },
        "profit": {
            "gross_profit": round(gross_profit, 2),
            "net_profit": round(net_profit, 2),
            "gross_margin": round(gross_profit / revenue * 100, 2) if revenue else 0.0,
            "net_margin": round(net_profit / revenue * 100, 2) if revenue else 0.0,
        },
    }
