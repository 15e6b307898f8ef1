from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Customer, Product, Supplier

PRODUCTS = [
    # sku, name, unit, price, cost_price, stock
    ("SP-0001", "Bút bi Thiên Long TL-027", "Cây", 5000, 3500, 500),
    ("SP-0002", "Giấy A4 Double A 70gsm", "Ram", 85000, 72000, 120),
    ("SP-0003", "Bìa hồ sơ nhựa", "Cái", 12000, 8000, 300),
    ("SP-0004", "Máy tính Casio FX-580VN X", "Cái", 650000, 540000, 25),
    ("SP-0005", "Băng keo trong 5cm", "Cuộn", 15000, 10000, 200),
]

CUSTOMERS = [
    ("Công ty TNHH Minh Phát", "0901234567", "Khách sỉ"),
    ("Nguyễn Văn An", "0912345678", "Khách lẻ"),
]

SUPPLIERS = [
    ("Nhà phân phối Văn phòng phẩm Sài Gòn", "0283456789"),
]

app = create_app()

with app.app_context():
    print("🔁 Loading demo catalog...")

    for sku, name, unit, price, cost_price, stock in PRODUCTS:
        if Product.query.filter_by(sku=sku).first():
            continue
        db.session.add(
            Product(sku=sku, name=name, unit=unit, price=price, cost_price=cost_price, stock=stock)
        )

    for name, phone, group in CUSTOMERS:
        if not Customer.query.filter_by(phone=phone).first():
            db.session.add(Customer(name=name, phone=phone, group=group, debt=0.0))

    for name, phone in SUPPLIERS:
        if not Supplier.query.filter_by(phone=phone).first():
            db.session.add(Supplier(name=name, phone=phone, debt=0.0))

    db.session.commit()

    print("✅ Products:", Product.query.count())
    print("✅ Customers:", Customer.query.count())
    print("✅ Suppliers:", Supplier.query.count())
