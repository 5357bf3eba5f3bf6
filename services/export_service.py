from io import BytesIO
from typing import List

import pandas as pd

from database.models import Product, Sale

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def to_xlsx(rows: List[dict], columns: List[str]) -> BytesIO:
    # Explicit columns keep the header row when there is no data
    df = pd.DataFrame(rows, columns=columns)
    output = BytesIO()
    with pd.ExcelWriter(output, engine="openpyxl") as writer:
        df.to_excel(writer, index=False)
    output.seek(0)
    return output


def products_workbook(products: List[Product]) -> BytesIO:
    columns = ["ID", "Name", "Category", "Barcode", "Quantity", "BuyPrice", "SellPrice",
               "LowStockThreshold", "ExpiryDate", "Supplier"]
    rows = []
    for p in products:
        rows.append({
            "ID": p.id,
            "Name": p.name,
            "Category": p.category,
            "Barcode": p.barcode,
            "Quantity": p.quantity,
            "BuyPrice": p.buy_price,
            "SellPrice": p.sell_price,
            "LowStockThreshold": p.low_stock_threshold,
            "ExpiryDate": p.expiry_date.strftime("%Y-%m-%d") if p.expiry_date else None,
            "Supplier": p.supplier.name if p.supplier else None,
        })
    return to_xlsx(rows, columns)


def sales_workbook(sales: List[Sale]) -> BytesIO:
    columns = ["ID", "Date", "Customer", "Items", "Discount", "Tax", "Total", "PaymentMethod"]
    rows = []
    for s in sales:
        items_str = ", ".join(
            f"{i.quantity}x {i.product.name if i.product else i.product_id}" for i in s.items
        )
        rows.append({
            "ID": s.id,
            "Date": s.date.strftime("%Y-%m-%d %H:%M"),
            "Customer": s.customer.name if s.customer else "Walk-in",
            "Items": items_str,
            "Discount": s.discount,
            "Tax": s.tax,
            "Total": s.total,
            "PaymentMethod": s.payment_method,
        })
    return to_xlsx(rows, columns)
