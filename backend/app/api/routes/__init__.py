# API Routes Module
from app.api.routes import (
    auth,
    billing,
)

__all__ = [
    "auth",
    "billing",
]
