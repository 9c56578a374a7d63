import logging

from fastapi import FastAPI

from common import db as common_db
from common import faults

from product_service.routes import router

logging.basicConfig(level=logging.INFO)


def create_app(db_path: str | None = None) -> FastAPI:
    app = FastAPI(title="ProductService")
    app.state.db_path = db_path or common_db.get_db_path()
    faults.init_faults(app.state)

    @app.on_event("startup")
    def startup() -> None:
        common_db.init_db(app.state.db_path)

    app.include_router(router)
    return app


app = create_app()
