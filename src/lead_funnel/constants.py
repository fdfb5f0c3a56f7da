"""Funnel constants shared across the SDK.

These values are referenced by the session, gateway, and funnel store.
Several can be overridden via environment variables so that deployments
can adjust behaviour without code changes.
"""

import os
from pathlib import Path

# Directory holding the shipped funnel YAML definitions.
DEFAULT_FUNNEL_DIR = Path(__file__).resolve().parent / "funnels"

# utm_source recorded when the landing page carries none.
# Overridable via DEFAULT_UTM_SOURCE env var.
DEFAULT_UTM_SOURCE = os.getenv("DEFAULT_UTM_SOURCE", "direct")

# Suffix appended to a funnel's lead_type for early (partial) captures.
PARTIAL_LEAD_SUFFIX = "_partial"

# Upper bounds for the Submission Gateway.  Overridable via
# INGESTION_TIMEOUT_SECONDS / CERTIFICATION_TOKEN_WAIT_SECONDS env vars.
DEFAULT_INGESTION_TIMEOUT = float(os.getenv("INGESTION_TIMEOUT_SECONDS", "5"))
DEFAULT_TOKEN_WAIT = float(os.getenv("CERTIFICATION_TOKEN_WAIT_SECONDS", "2"))

# How long aclose() waits for in-flight background deliveries.
DELIVERY_DRAIN_TIMEOUT = float(os.getenv("DELIVERY_DRAIN_TIMEOUT_SECONDS", "10"))

# Contact validation patterns.
PHONE_DIGITS = 10
EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"

# Ordered field names collected on the contact step.
CONTACT_FIELDS: tuple[str, ...] = ("first_name", "last_name", "phone", "email")
