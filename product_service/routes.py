from fastapi import APIRouter, HTTPException, Request

from common import db as common_db
from common import faults
from common.ids import new_product_id

from product_service.models import ConfigRequest, CreateProductRequest, Product

router = APIRouter()


@router.get("/health")
def health() -> dict:
    return {"status": "ok"}


@router.post("/config")
def set_config(config: ConfigRequest, request: Request) -> dict:
    return faults.update_faults(request.app.state, config.delay_ms, config.fail_mode, config.fail_code)


@router.post("/reset")
def reset_state(request: Request) -> dict:
    conn = common_db.connect(request.app.state.db_path)
    try:
        conn.execute("DELETE FROM products")
    finally:
        conn.close()
    faults.init_faults(request.app.state)
    return {"status": "reset"}


@router.get("/products", response_model=list[Product])
def list_products(request: Request) -> list[Product]:
    conn = common_db.connect(request.app.state.db_path)
    try:
        rows = conn.execute("SELECT product_id, name, description, price FROM products ORDER BY product_id").fetchall()
    finally:
        conn.close()
    return [Product(id=pid, name=name, description=desc, price=price) for pid, name, desc, price in rows]


@router.get("/products/{product_id}", response_model=Product)
def get_product(product_id: str, request: Request) -> Product:
    faults.apply_faults(request.app.state)

    conn = common_db.connect(request.app.state.db_path)
    try:
        row = conn.execute(
            "SELECT product_id, name, description, price FROM products WHERE product_id = ?",
            (product_id,),
        ).fetchone()
    finally:
        conn.close()
    if not row:
        raise HTTPException(status_code=404, detail="not found")
    return Product(id=row[0], name=row[1], description=row[2], price=row[3])


@router.post("/products")
def create_product(payload: CreateProductRequest, request: Request) -> dict:
    product_id = payload.id or new_product_id()
    conn = common_db.connect(request.app.state.db_path)
    try:
        conn.execute(
            "INSERT OR REPLACE INTO products (product_id, name, description, price) VALUES (?, ?, ?, ?)",
            (product_id, payload.name, payload.description, str(payload.price)),
        )
    finally:
        conn.close()
    return {"id": product_id}
