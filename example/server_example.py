from x402_facilitator.servers import FacilitatorServer
from x402_facilitator.engine.events import VerifyRejectedEvent, SettledEvent, SettleFailedEvent
from x402_facilitator.utils import setup_logging


# Reads RELAY_PRIVATE_KEY, RPC_URL and SUBMIT_RPC_URL from the environment (or .env)
logger = setup_logging()

app = FacilitatorServer(title="x402 facilitator")


# Optional: Add event hooks for custom logic
@app.hook(VerifyRejectedEvent)
async def on_rejected(event, deps):
    """Log rejected payloads."""
    logger.info("rejected: %s (payer %s)", event.result.invalid_reason, event.result.payer)

@app.hook(SettledEvent)
async def on_settled(event, deps):
    """Log when settlements are submitted."""
    logger.info("settled: %s after %d attempt(s)", event.result.transaction, event.result.attempts)

@app.hook(SettleFailedEvent)
async def on_settle_failed(event, deps):
    """Log when settlements fail."""
    logger.warning("settlement failed: %s (last node error: %s)", event.result.error, event.result.last_error)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="localhost", port=8000, log_level="info")
