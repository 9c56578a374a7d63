import logging
import os

from fastapi import FastAPI

from common import db as common_db
from common import faults

from cart_service.routes import router

logging.basicConfig(level=logging.INFO)


def create_app(db_path: str | None = None, jwt_secret: str | None = None) -> FastAPI:
    app = FastAPI(title="CartService")
    app.state.db_path = db_path or common_db.get_db_path()
    app.state.jwt_secret = jwt_secret or os.environ.get("JWT_SECRET", "devsecret")
    faults.init_faults(app.state)

    @app.on_event("startup")
    def startup() -> None:
        common_db.init_db(app.state.db_path)

    app.include_router(router)
    return app


app = create_app()
