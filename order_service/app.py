import logging

from fastapi import FastAPI

from common import db as common_db

from order_service.clients import CartStore, Catalog
from order_service.config import Settings
from order_service.routes import router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    cart: CartStore | None = None,
    catalog: Catalog | None = None,
) -> FastAPI:
    """Build the order service. ``cart``/``catalog`` replace the HTTP clients when given."""
    settings = settings or Settings.from_env()
    app = FastAPI(title="OrderService")
    app.state.settings = settings
    app.state.cart = cart
    app.state.catalog = catalog

    @app.on_event("startup")
    def startup() -> None:
        common_db.init_db(app.state.settings.db_path)
        logger.info(
            "order service ready: cart=%s catalog=%s db=%s",
            settings.cart_url,
            settings.catalog_url,
            settings.db_path,
        )

    app.include_router(router)
    return app


app = create_app()
