import os
from dataclasses import dataclass, replace

from common import db as common_db


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = "devsecret"
    jwt_algorithm: str = "HS256"
    cart_url: str = "http://localhost:8001"
    catalog_url: str = "http://localhost:8002"
    # Defaults are tuned for lab scenarios.
    cart_timeout_s: float = 3.0
    catalog_timeout_s: float = 3.0
    retry_backoff_s: float = 0.2
    max_price_lookups: int = 8
    # Shared secret for the internal /reconcile sweep; unset disables the endpoint.
    reconcile_token: str | None = None
    db_path: str = common_db.DEFAULT_DB_PATH

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            jwt_secret=os.environ.get("JWT_SECRET", cls.jwt_secret),
            cart_url=os.environ.get("CART_URL", cls.cart_url),
            catalog_url=os.environ.get("PRODUCT_URL", cls.catalog_url),
            cart_timeout_s=float(os.environ.get("CART_TIMEOUT_S", cls.cart_timeout_s)),
            catalog_timeout_s=float(os.environ.get("CATALOG_TIMEOUT_S", cls.catalog_timeout_s)),
            max_price_lookups=int(os.environ.get("MAX_PRICE_LOOKUPS", cls.max_price_lookups)),
            reconcile_token=os.environ.get("RECONCILE_TOKEN") or None,
            db_path=common_db.get_db_path(),
        )

    def with_timeouts(
        self, cart_timeout_s: float | None = None, catalog_timeout_s: float | None = None
    ) -> "Settings":
        return replace(
            self,
            cart_timeout_s=self.cart_timeout_s if cart_timeout_s is None else cart_timeout_s,
            catalog_timeout_s=self.catalog_timeout_s if catalog_timeout_s is None else catalog_timeout_s,
        )
