from fastapi import APIRouter, Header, HTTPException, Request

from common import db as common_db
from common import faults
from common.auth import CredentialError, CredentialVerifier

from cart_service.models import AddItemRequest, ConfigRequest, RemoveItemRequest

router = APIRouter()


def _user(request: Request, authorization: str | None) -> str:
    verifier = CredentialVerifier(request.app.state.jwt_secret)
    try:
        return verifier.verify(authorization)
    except CredentialError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc


def _read_cart(conn, user_id: str) -> list[dict]:
    rows = conn.execute(
        "SELECT product_id, quantity FROM cart_items WHERE user_id = ? ORDER BY position",
        (user_id,),
    ).fetchall()
    return [{"productId": product_id, "quantity": quantity} for product_id, quantity in rows]


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
        conn.execute("DELETE FROM cart_items")
    finally:
        conn.close()
    faults.init_faults(request.app.state)
    return {"status": "reset"}


@router.get("/cart")
def get_cart(request: Request, authorization: str | None = Header(default=None)) -> dict:
    user_id = _user(request, authorization)
    faults.apply_faults(request.app.state)

    conn = common_db.connect(request.app.state.db_path)
    try:
        return {"cart": _read_cart(conn, user_id)}
    finally:
        conn.close()


@router.post("/cart/add")
def add_item(payload: AddItemRequest, request: Request, authorization: str | None = Header(default=None)) -> dict:
    user_id = _user(request, authorization)

    conn = common_db.connect(request.app.state.db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        existing = conn.execute(
            "SELECT quantity FROM cart_items WHERE user_id = ? AND product_id = ?",
            (user_id, payload.productId),
        ).fetchone()
        if existing:
            conn.execute(
                "UPDATE cart_items SET quantity = quantity + ? WHERE user_id = ? AND product_id = ?",
                (payload.quantity, user_id, payload.productId),
            )
        else:
            position = conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM cart_items WHERE user_id = ?",
                (user_id,),
            ).fetchone()[0]
            conn.execute(
                "INSERT INTO cart_items (user_id, product_id, quantity, position) VALUES (?, ?, ?, ?)",
                (user_id, payload.productId, payload.quantity, position),
            )
        conn.execute("COMMIT")
        return {"status": "ok", "cart": _read_cart(conn, user_id)}
    finally:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
        conn.close()


@router.post("/cart/remove")
def remove_item(payload: RemoveItemRequest, request: Request, authorization: str | None = Header(default=None)) -> dict:
    user_id = _user(request, authorization)

    conn = common_db.connect(request.app.state.db_path)
    try:
        conn.execute(
            "DELETE FROM cart_items WHERE user_id = ? AND product_id = ?",
            (user_id, payload.productId),
        )
        return {"cart": _read_cart(conn, user_id)}
    finally:
        conn.close()


@router.post("/cart/clear")
def clear_cart(request: Request, authorization: str | None = Header(default=None)) -> dict:
    user_id = _user(request, authorization)
    faults.apply_faults(request.app.state)

    conn = common_db.connect(request.app.state.db_path)
    try:
        # Clearing an empty cart is a no-op success.
        conn.execute("DELETE FROM cart_items WHERE user_id = ?", (user_id,))
    finally:
        conn.close()
    return {"status": "cleared"}
