import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

import click
from flask import Flask, g, jsonify, request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from nubia import db
from nubia.core.cache import init_redis
from nubia.core.config import Config
from nubia.core.exceptions import BaseAPIException, DatabaseError, InternalServerError, RateLimitError
from nubia.core.rate_limit import init_rate_limit
from nubia.routes import (
    admin_bp,
    auth_bp,
    cart_bp,
    checkout_bp,
    contact_bp,
    cron_bp,
    custom_orders_bp,
    orders_bp,
    payments_bp,
    products_bp,
    promo_bp,
    returns_bp,
    reviews_bp,
    users_bp,
    webhooks_bp,
    wishlist_bp,
)
from nubia.utils.dates import DateUtils
from nubia.utils.formatting import FormattingUtils

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

BLUEPRINTS = [
    (auth_bp, "/auth"),
    (users_bp, "/users"),
    (products_bp, ""),
    (cart_bp, "/cart"),
    (wishlist_bp, "/wishlist"),
    (reviews_bp, "/reviews"),
    (checkout_bp, "/checkout"),
    (orders_bp, "/orders"),
    (payments_bp, "/payments"),
    (webhooks_bp, "/webhooks"),
    (promo_bp, "/promo"),
    (returns_bp, "/returns"),
    (custom_orders_bp, "/custom-orders"),
    (contact_bp, ""),
    (admin_bp, "/admin"),
    (cron_bp, "/cron"),
]


def create_app(config: Optional[Config] = None) -> Flask:
    """
    Application factory.

    Tests pass their own Config (SQLite, no Redis); everything else reads
    the environment.
    """
    config = config or Config.from_env()
    config.validate()

    logging.basicConfig(
        level=getattr(logging, config.app.log_level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    app = Flask(__name__)
    app.config["NUBIA"] = config
    app.config["TESTING"] = config.app.testing
    app.json.sort_keys = False

    db.init_engine(config.database)
    init_redis(app)
    init_rate_limit(app)

    app.add_template_filter(FormattingUtils.format_money, "money")
    app.add_template_filter(DateUtils.format_for_display, "display_date")

    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=f"{API_PREFIX}{prefix}")

    # ------------------------------------------------------------------ #
    # Request tracing                                                     #
    # ------------------------------------------------------------------ #
    @app.before_request
    def start_request():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        g.started_at = time.perf_counter()

    @app.after_request
    def finish_request(response):
        response.headers["X-Request-ID"] = g.get("request_id", "")
        started = g.get("started_at")
        if started is not None:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info(f"{request.method} {request.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        return response

    # ------------------------------------------------------------------ #
    # Error handlers: one JSON envelope for every failure                 #
    # ------------------------------------------------------------------ #
    @app.errorhandler(BaseAPIException)
    def api_error(e: BaseAPIException):
        if e.status_code >= 500:
            logger.error(f"{e.error_code}: {e.internal_message}")
        else:
            logger.info(f"{e.error_code}: {e.message}")
        response = jsonify(e.to_dict())
        if isinstance(e, RateLimitError) and e.details.get("retry_after_seconds"):
            response.headers["Retry-After"] = str(e.details["retry_after_seconds"])
        return response, e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        return jsonify({"success": False, "error": str(e.description)}), e.code or 500

    @app.errorhandler(SQLAlchemyError)
    def db_error(e: SQLAlchemyError):
        logger.exception("Database error")
        err = DatabaseError(str(e))
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(Exception)
    def internal_error(e: Exception):
        logger.exception("Unhandled error")
        err = InternalServerError(str(e))
        return jsonify(err.to_dict()), err.status_code

    # ------------------------------------------------------------------ #
    # Health check                                                        #
    # ------------------------------------------------------------------ #
    @app.get("/health")
    def health():
        """Liveness + readiness probe. Returns 503 if DB is unreachable."""
        try:
            with db.get_connection() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as exc:
            logger.error(f"Health check failed: {exc}")
            return jsonify({"status": "error", "database": "unreachable"}), 503
        return jsonify({
            "status": "ok",
            "database": "reachable",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }), 200

    # ------------------------------------------------------------------ #
    # CLI                                                                 #
    # ------------------------------------------------------------------ #
    @app.cli.command("init-db")
    def init_db_command():
        """Create every table that does not exist yet."""
        import nubia.models  # noqa: F401  registers the tables on Base.metadata

        db.Base.metadata.create_all(db.get_engine())
        click.echo("Database tables created")

    @app.cli.command("seed")
    def seed_command():
        """Load development categories, products and promo codes."""
        from nubia.seed import seed

        with db.session_scope() as session:
            counts = seed(session)
        click.echo(f"Seeded {counts}")

    return app


if __name__ == "__main__":
    application = create_app()
    cfg = application.config["NUBIA"].app
    application.run(debug=cfg.debug, host=cfg.host, port=cfg.port)
