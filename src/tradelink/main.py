from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI
from tradelink.api.routes.contractors import router as contractors_router
from tradelink.api.routes.invitations import router as invitations_router
from tradelink.api.routes.properties import router as properties_router
import tradelink.models  # ensure models load for Alembic
from tradelink.logging_config import configure_logging
from prometheus_fastapi_instrumentator import Instrumentator
from tradelink.tracing import configure_tracing
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

# ------------------------------------------------------------------
# Configure Observability
# ------------------------------------------------------------------
configure_logging()
configure_tracing()

app = FastAPI(title="TradeLink")

app.include_router(invitations_router)
app.include_router(contractors_router)
app.include_router(properties_router)

# ------------------------------------------------------------------
# Observability
# ------------------------------------------------------------------
FastAPIInstrumentor.instrument_app(app)
Instrumentator().instrument(app).expose(app)

# ------------------------------------------------------------------
# Health Check
# ------------------------------------------------------------------
@app.get("/health")
def health_check():
    return {"status": "ok"}
