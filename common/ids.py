import uuid


def _short_id(prefix: str, length: int) -> str:
    # Readable prefix so ids are easy to pick out when scanning logs.
    return f"{prefix}_{uuid.uuid4().hex[:length]}"


def new_order_id() -> str:
    return _short_id("ord", 12)


def new_product_id() -> str:
    return _short_id("p", 8)
