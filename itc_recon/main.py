import logging
from fastapi import FastAPI
from itc_recon.core.config import settings
from itc_recon.core.middleware import AuditMiddleware
from itc_recon.core.rate_limit import MinIntervalRateLimiter
from itc_recon.api import health, reconciliation, reports, explanation

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

app = FastAPI(title=settings.PROJECT_NAME)
app.add_middleware(AuditMiddleware)
app.state.explain_limiter = MinIntervalRateLimiter(settings.EXPLAIN_MIN_INTERVAL_SECONDS)

# Include routers
app.include_router(health.router)
app.include_router(reconciliation.router)
app.include_router(reports.router)
app.include_router(explanation.router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
