import logging

from flask import Blueprint

from nubia.core.config import get_config
from nubia.core.rate_limit import AUTH, rate_limit
from nubia.core.security import get_current_user_id
from nubia.db import session_scope
from nubia.routes.schemas import LoginSchema, SignupSchema
from nubia.routes.utils import load_body, success_response
from nubia.services.auth_service import AuthService

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)

_signup_schema = SignupSchema()
_login_schema = LoginSchema()


@auth_bp.route("/signup", methods=["POST"])
@rate_limit("auth:signup", AUTH)
def signup():
    data = load_body(_signup_schema)
    with session_scope() as session:
        result = AuthService(session, get_config()).signup(data)
    return success_response(result, "Account created.", 201)


@auth_bp.route("/login", methods=["POST"])
@rate_limit("auth:login", AUTH)
def login():
    data = load_body(_login_schema)
    with session_scope() as session:
        result = AuthService(session, get_config()).login(data["email"], data["password"])
    return success_response(result)


@auth_bp.route("/me", methods=["GET"])
def me():
    user_id = get_current_user_id()
    with session_scope() as session:
        user = AuthService(session, get_config()).me(user_id)
    return success_response(user)
