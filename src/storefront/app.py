import logging
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from storefront import db
from storefront.core.config import Config
from storefront.core.dependencies import DependencyContainer
from storefront.core.exceptions import BaseAPIException
from storefront.routes import (
    addresses_bp,
    carts_bp,
    categories_bp,
    content_bp,
    dashboard_bp,
    orders_bp,
    products_bp,
    returns_bp,
    reviews_bp,
    settings_bp,
    users_bp,
    webhooks_bp,
    wishlist_bp,
)
from storefront.routes.utils import CONTAINER_KEY, close_db
from storefront.services.gateways import PaymentGateway, StripeGateway, SvixVerifier, UserWebhookVerifier

logger = logging.getLogger(__name__)


def build_container(config: Config) -> DependencyContainer:
    """External gateways, built on first use. Tests register fakes over these."""
    container = DependencyContainer()
    container.register_factory(
        PaymentGateway,
        lambda: StripeGateway(config.payments.stripe_secret_key, config.payments.stripe_webhook_secret),
    )
    container.register_factory(
        UserWebhookVerifier,
        lambda: SvixVerifier(config.security.user_webhook_secret),
    )
    return container


def _error_body(code: str, message: str, details: Optional[dict] = None) -> dict:
    return {
        "success": False,
        "error": {"code": code, "message": message, "details": details or {}},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def create_app(config: Optional[Config] = None) -> Flask:
    """
    Application factory.

    Takes an explicit Config so tests can build an app against an in-memory
    database; otherwise the config is read from the environment (.env
    included).
    """
    config = config or Config()
    config.validate()

    logging.basicConfig(
        level=getattr(logging, config.app.log_level.upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    )

    db.init_engine(config.database)

    app = Flask(__name__)
    app.secret_key = config.security.session_secret_key
    app.config["STOREFRONT_CONFIG"] = config
    app.extensions[CONTAINER_KEY] = build_container(config)

    # ------------------------------------------------------------------ #
    # Blueprints: each domain registered under /api/v1/                  #
    # ------------------------------------------------------------------ #
    prefix = f"/api/{config.api.version}"
    app.register_blueprint(products_bp,   url_prefix=f"{prefix}/products")
    app.register_blueprint(categories_bp, url_prefix=f"{prefix}/categories")
    app.register_blueprint(carts_bp,      url_prefix=f"{prefix}/carts")
    app.register_blueprint(orders_bp,     url_prefix=f"{prefix}/orders")
    app.register_blueprint(returns_bp,    url_prefix=f"{prefix}/returns")
    app.register_blueprint(reviews_bp,    url_prefix=f"{prefix}/reviews")
    app.register_blueprint(wishlist_bp,   url_prefix=f"{prefix}/wishlist")
    app.register_blueprint(addresses_bp,  url_prefix=f"{prefix}/addresses")
    app.register_blueprint(users_bp,      url_prefix=f"{prefix}/users")
    app.register_blueprint(content_bp,    url_prefix=f"{prefix}/content")
    app.register_blueprint(settings_bp,   url_prefix=f"{prefix}/settings")
    app.register_blueprint(webhooks_bp,   url_prefix=f"{prefix}/webhooks")
    app.register_blueprint(dashboard_bp,  url_prefix=f"{prefix}/dashboard")

    app.teardown_appcontext(close_db)

    # ------------------------------------------------------------------ #
    # Error handlers: consistent JSON error envelope                     #
    # ------------------------------------------------------------------ #
    @app.errorhandler(BaseAPIException)
    def api_error(e: BaseAPIException):
        if e.status_code >= 500:
            logger.error(f"{e.error_code}: {e.internal_message}")
        else:
            logger.info(f"{e.error_code}: {e.message}")
        body = e.to_dict()
        body["timestamp"] = datetime.now(timezone.utc).isoformat()
        return jsonify(body), e.status_code

    @app.errorhandler(HTTPException)
    def http_error(e: HTTPException):
        if e.code >= 500:
            logger.error(f"HTTP {e.code}: {e.description}")
        code = (e.name or "error").upper().replace(" ", "_")
        return jsonify(_error_body(code, str(e.description))), e.code

    @app.errorhandler(SQLAlchemyError)
    def db_error(e):
        logger.error(f"Database error: {e}")
        return jsonify(_error_body("DATABASE_ERROR", "A database error occurred.")), 500

    # ------------------------------------------------------------------ #
    # Health check                                                         #
    # ------------------------------------------------------------------ #
    @app.get("/health")
    def health():
        """Liveness + readiness probe. Returns 503 if DB is unreachable."""
        try:
            with db.get_connection() as conn:
                conn.execute(text("SELECT 1"))
            return jsonify({
                "status": "ok",
                "database": "reachable",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }), 200
        except SQLAlchemyError as exc:
            logger.error(f"Health check failed: {exc}")
            return jsonify({"status": "error", "database": "unreachable"}), 503

    logger.info(f"Storefront API ready ({config.environment}) at {prefix}")
    return app


if __name__ == "__main__":
    settings = Config()
    application = create_app(settings)
    application.run(debug=settings.app.debug, host=settings.app.host, port=settings.app.port)
