"""lead_funnel_server — FastAPI HTTP API for the lead funnel SDK."""
