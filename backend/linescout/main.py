from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linescout.config import settings
from linescout.middleware.exceptions import register_exception_handlers
from linescout.middleware.rate_limit import RateLimitMiddleware
from linescout.middleware.security import (
    HTTPSRedirectMiddleware,
    SecurityHeadersMiddleware,
)
from linescout.routers import (
    admin_agents,
    agents,
    customer_auth,
    handoffs,
    health,
    intake,
    internal_auth,
    mobile,
    payments,
    paystack,
    quotes,
    reorders,
)
from linescout.services.scheduler import lifespan

app = FastAPI(
    title="LineScout",
    description="Sourcing handoffs, payments and agent operations for Sure Imports",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Exception Handlers ───────────────────────────────────────
register_exception_handlers(app)

# ── Middleware (outermost first) ─────────────────────────────
# Security headers (first - applies to all responses)
app.add_middleware(SecurityHeadersMiddleware)

# HTTPS redirect (production only)
app.add_middleware(HTTPSRedirectMiddleware, force_https=settings.environment == "production")

# Rate limiting
if settings.rate_limit_enabled:
    app.add_middleware(
        RateLimitMiddleware,
        default_limit=100,  # 100 requests per minute (anonymous/IP)
        authenticated_limit=500,  # 500 requests per minute (JWT user)
        default_window=60,
        exempt_paths=["/health", "/health/ready", "/docs", "/openapi.json", "/api/webhooks/paystack"],
    )

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Routers ──────────────────────────────────────────────────
# Public
app.include_router(health.router)
app.include_router(customer_auth.router, prefix="/api/auth", tags=["auth"])
app.include_router(intake.router, prefix="/api/linescout-handoffs", tags=["intake"])
app.include_router(quotes.public_router, prefix="/api/quote", tags=["quotes"])
app.include_router(paystack.webhook_router, prefix="/api/webhooks", tags=["paystack"])

# Customer (mobile app)
app.include_router(paystack.router, prefix="/api/payments/paystack", tags=["paystack"])
app.include_router(mobile.router, prefix="/api/mobile", tags=["mobile"])

# Internal (admins and agents)
app.include_router(internal_auth.router, prefix="/api/internal/auth", tags=["internal-auth"])
app.include_router(payments.router, prefix="/api/internal/handoffs", tags=["payments"])
app.include_router(quotes.router, prefix="/api/internal/handoffs", tags=["quotes"])
app.include_router(handoffs.router, prefix="/api/internal/handoffs", tags=["handoffs"])
app.include_router(reorders.router, prefix="/api/internal/reorders", tags=["reorders"])
app.include_router(agents.router, prefix="/api/internal/agents", tags=["agents"])
app.include_router(admin_agents.router, prefix="/api/internal/admin/agents", tags=["admin"])
