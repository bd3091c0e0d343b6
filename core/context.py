# core/context.py
import time
from dataclasses import dataclass, field

from fastapi import Request
from sqlalchemy.engine import Engine

from core.config import Settings
from core.security import TokenService
from services.razorpay_gateway import PaymentGateway


@dataclass
class AppContext:
    """Process-wide collaborators, built once by create_app and injected per request."""

    settings: Settings
    engine: Engine
    tokens: TokenService
    gateway: PaymentGateway
    started_at: float = field(default_factory=time.time)

    @property
    def uptime_seconds(self) -> float:
        return round(time.time() - self.started_at, 2)


def get_app_context(request: Request) -> AppContext:
    return request.app.state.ctx
