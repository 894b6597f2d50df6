# models.py
from flask_sqlalchemy import SQLAlchemy
from flask_login import UserMixin
from datetime import datetime

db = SQLAlchemy()

MONEY = db.Numeric(12, 2)
QTY = db.Numeric(12, 3)


class AuditColumns:
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_by = db.Column(db.String(100))
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_by = db.Column(db.String(100))


class User(UserMixin, db.Model):
    __tablename__ = "user"
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    name = db.Column(db.String(120))
    password_hash = db.Column(db.String(256))
    role = db.Column(db.String(20), default="admin")


class Customer(AuditColumns, db.Model):
    __tablename__ = "customer"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    phone = db.Column(db.String(30))
    address = db.Column(db.String(250))
    village = db.Column(db.String(120))
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class Product(AuditColumns, db.Model):
    __tablename__ = "product"
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500))
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(MONEY, nullable=False, default=0)
    current_stock = db.Column(QTY, nullable=False, default=0)
    reorder_level = db.Column(QTY, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)


class ProductPurchase(db.Model):
    __tablename__ = "product_purchase"
    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    purchase_date = db.Column(db.DateTime, nullable=False)
    quantity = db.Column(QTY, nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(MONEY, nullable=False)
    total_amount = db.Column(MONEY, nullable=False)
    supplier_name = db.Column(db.String(200))
    invoice_number = db.Column(db.String(50))
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_by = db.Column(db.String(100))


class MilkCycle(AuditColumns, db.Model):
    __tablename__ = "milk_cycle"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    total_milk_amount = db.Column(MONEY, nullable=False, default=0)
    is_settled = db.Column(db.Boolean, nullable=False, default=False)
    settlement_date = db.Column(db.DateTime)
    notes = db.Column(db.String(500))
    sales = db.relationship("ProductSale", order_by="ProductSale.id", lazy="select")
    advances = db.relationship("AdvancePayment", order_by="AdvancePayment.id", lazy="select")


class ProductSale(db.Model):
    __tablename__ = "product_sale"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("product.id"), nullable=False)
    cycle_id = db.Column(db.Integer, db.ForeignKey("milk_cycle.id"), nullable=False)
    sale_date = db.Column(db.DateTime, nullable=False)
    quantity = db.Column(QTY, nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(MONEY, nullable=False)
    total_amount = db.Column(MONEY, nullable=False)
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_by = db.Column(db.String(100))
    product = db.relationship("Product")


class AdvancePayment(db.Model):
    __tablename__ = "advance_payment"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    cycle_id = db.Column(db.Integer, db.ForeignKey("milk_cycle.id"), nullable=False)
    payment_date = db.Column(db.DateTime, nullable=False)
    amount = db.Column(MONEY, nullable=False)
    payment_mode = db.Column(db.String(20), nullable=False)  # Cash / BankTransfer / Cheque / UPI
    reference_number = db.Column(db.String(100))
    notes = db.Column(db.String(500))
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    created_by = db.Column(db.String(100))


class Settlement(AuditColumns, db.Model):
    __tablename__ = "settlement"
    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customer.id"), nullable=False)
    cycle_id = db.Column(db.Integer, db.ForeignKey("milk_cycle.id"), unique=True, nullable=False)
    settlement_date = db.Column(db.DateTime, nullable=False)
    milk_amount = db.Column(MONEY, nullable=False)
    total_product_sales = db.Column(MONEY, nullable=False)
    total_advance_paid = db.Column(MONEY, nullable=False)
    final_payable = db.Column(MONEY, nullable=False)  # negative when the customer owes us
    payment_mode = db.Column(db.String(20), nullable=False)
    payment_reference = db.Column(db.String(100))
    payment_date = db.Column(db.DateTime)
    is_paid = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.String(500))
    details = db.relationship("SettlementDetail", order_by="SettlementDetail.id",
                              cascade="all, delete-orphan", lazy="select")


class SettlementDetail(db.Model):
    __tablename__ = "settlement_detail"
    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlement.id"), nullable=False)
    detail_type = db.Column(db.String(20), nullable=False)  # Milk / ProductSale / Advance
    reference_id = db.Column(db.Integer)
    description = db.Column(db.String(200), nullable=False)
    amount = db.Column(MONEY, nullable=False)
    transaction_date = db.Column(db.DateTime, nullable=False)
