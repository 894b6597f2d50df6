# app.py
from flask import Flask, jsonify, request
from flask_login import LoginManager, login_required
from werkzeug.security import generate_password_hash
from models import db, User
from auth import auth, acting_username
from billing import billing
from errors import DairyError, ConsistencyError
from receipt import DEFAULT_TITLE
from registry import CustomerService, ProductService
from serializers import payload, customer_json, product_json, purchase_json
from stock import StockService
from store import current_clock, current_store
from utils import parse_date, to_bool, utc_now
import logging
import os

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "replace-with-a-strong-secret")
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///db.sqlite3")
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO")
    app.config["RECEIPT_TITLE"] = os.environ.get("RECEIPT_TITLE", DEFAULT_TITLE)
    app.config["ADMIN_PASSWORD"] = os.environ.get("ADMIN_PASSWORD", "adminpass")
    app.config["CLOCK"] = utc_now
    if test_config:
        app.config.from_mapping(test_config)

    logging.basicConfig(level=app.config["LOG_LEVEL"],
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    db.init_app(app)

    login_manager = LoginManager()
    login_manager.init_app(app)

    app.register_blueprint(auth)
    app.register_blueprint(billing)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Login required"}), 401

    @app.errorhandler(DairyError)
    def handle_dairy_error(e):
        if isinstance(e, ConsistencyError):
            logger.error(f"{request.method} {request.path} failed: {e.message}")
        else:
            logger.warning(f"{request.method} {request.path} rejected: {e.message}")
        return jsonify({"error": e.message, "type": type(e).__name__}), e.http_status

    def customers():
        return CustomerService(current_store(), current_clock())

    def products():
        return ProductService(current_store(), current_clock())

    @app.route("/")
    @login_required
    def dashboard():
        store = current_store()
        stats = {
            "active_customers": store.count_customers(active_only=True),
            "active_products": len(store.list_products(active_only=True)),
            "open_cycles": store.count_cycles(unsettled_only=True),
            "unpaid_settlements": store.count_settlements(unpaid_only=True),
            "products_needing_reorder": len(StockService(store, current_clock()).products_needing_reorder()),
        }
        return jsonify(stats)

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    @app.route("/customers")
    @login_required
    def customers_list():
        search = request.args.get("q")
        if search:
            rows = customers().search_customers(search)
        else:
            rows = customers().list_customers(active_only=to_bool(request.args.get("active")))
        return jsonify({"customers": [customer_json(c) for c in rows]})

    @app.route("/customers", methods=["POST"])
    @login_required
    def add_customer():
        data = payload()
        customer = customers().create_customer(
            data.get("code"), data.get("name"), acting_username(),
            phone=data.get("phone"), address=data.get("address"), village=data.get("village"))
        return jsonify(customer_json(customer)), 201

    @app.route("/customers/<int:customer_id>")
    @login_required
    def customer_detail(customer_id):
        return jsonify(customer_json(customers().get_customer(customer_id)))

    @app.route("/customers/<int:customer_id>", methods=["PUT"])
    @login_required
    def update_customer(customer_id):
        data = payload()
        customer = customers().update_customer(
            customer_id, data.get("name"), acting_username(),
            phone=data.get("phone"), address=data.get("address"), village=data.get("village"))
        return jsonify(customer_json(customer))

    @app.route("/customers/<int:customer_id>/activate", methods=["POST"])
    @login_required
    def activate_customer(customer_id):
        return jsonify(customer_json(customers().activate_customer(customer_id, acting_username())))

    @app.route("/customers/<int:customer_id>/deactivate", methods=["POST"])
    @login_required
    def deactivate_customer(customer_id):
        return jsonify(customer_json(customers().deactivate_customer(customer_id, acting_username())))

    # ------------------------------------------------------------------
    # Products and stock
    # ------------------------------------------------------------------

    @app.route("/products")
    @login_required
    def products_list():
        rows = products().list_products(active_only=to_bool(request.args.get("active")))
        return jsonify({"products": [product_json(p) for p in rows]})

    @app.route("/products", methods=["POST"])
    @login_required
    def add_product():
        data = payload()
        product = products().create_product(
            data.get("code"), data.get("name"), data.get("unit"), data.get("unit_price"),
            data.get("reorder_level") or 0, acting_username(), description=data.get("description"))
        return jsonify(product_json(product)), 201

    @app.route("/products/<int:product_id>")
    @login_required
    def product_detail(product_id):
        return jsonify(product_json(products().get_product(product_id)))

    @app.route("/products/<int:product_id>", methods=["PUT"])
    @login_required
    def update_product(product_id):
        data = payload()
        product = products().update_product(
            product_id, data.get("name"), data.get("unit_price"), data.get("reorder_level") or 0,
            acting_username(), description=data.get("description"))
        return jsonify(product_json(product))

    @app.route("/products/<int:product_id>/activate", methods=["POST"])
    @login_required
    def activate_product(product_id):
        return jsonify(product_json(products().activate_product(product_id, acting_username())))

    @app.route("/products/<int:product_id>/deactivate", methods=["POST"])
    @login_required
    def deactivate_product(product_id):
        return jsonify(product_json(products().deactivate_product(product_id, acting_username())))

    @app.route("/products/<int:product_id>/purchases", methods=["POST"])
    @login_required
    def record_purchase(product_id):
        data = payload()
        purchase_date = data.get("purchase_date")
        purchase = StockService(current_store(), current_clock()).record_purchase(
            product_id, data.get("quantity"), data.get("unit_price"), acting_username(),
            supplier_name=data.get("supplier_name"), invoice_number=data.get("invoice_number"),
            notes=data.get("notes"),
            purchase_date=parse_date(purchase_date, "purchase_date") if purchase_date else None)
        return jsonify(purchase_json(purchase)), 201

    @app.route("/products/reorder")
    @login_required
    def products_reorder():
        rows = StockService(current_store(), current_clock()).products_needing_reorder()
        return jsonify({"products": [product_json(p) for p in rows]})

    @app.cli.command("init-db")
    def init_db():
        with app.app_context():
            db.create_all()
            # seed default admin if not present
            if not User.query.filter_by(username="admin").first():
                admin = User(username="admin", name="Administrator",
                             password_hash=generate_password_hash(app.config["ADMIN_PASSWORD"]), role="admin")
                db.session.add(admin)
            db.session.commit()
            print("DB initialized and seeded.")

    # create tables automatically if file missing
    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    app = create_app()
    app.run(host="0.0.0.0", debug=True)
