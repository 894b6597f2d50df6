# auth.py
from flask import Blueprint, jsonify
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import login_user, logout_user, login_required, current_user
from models import db, User
from serializers import payload

auth = Blueprint("auth", __name__, url_prefix="/auth")


@auth.route("/login", methods=["POST"])
def login():
    data = payload()
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""
    user = User.query.filter_by(username=username).first()
    if not user or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Invalid username or password"}), 401
    login_user(user, remember=bool(data.get("remember")))
    return jsonify({"message": "Logged in", "username": user.username, "role": user.role}), 200


@auth.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"message": "Logged out"}), 200


def acting_username():
    # every write is stamped with whoever is logged in
    return current_user.username


def create_user(username, password, name=None, role="admin"):
    user = User(username=username, name=name or username,
                password_hash=generate_password_hash(password), role=role)
    db.session.add(user)
    db.session.commit()
    return user
