"""Integration Apps: vendor integrations plugged into a host platform.

Architecture Overview
=====================

The host platform owns storage, channels and the UI.  This package owns the
conversation with each vendor and exposes it through two kinds of entry
point:

1. **Tools**: named operations with a pydantic input model, invoked by the
   host (or an LLM agent via LangChain) and returning a ``ToolResult``.

2. **Webhooks**: inbound vendor callbacks.  Signatures are verified against
   the raw body, the payload is normalised and handed to the host.

Apps
----
- **petbooqz**: veterinary practice calendars: availability, the two-phase
  reserve → confirm booking protocol, clients, patients and ASAP orders.
- **meta**: WhatsApp Business messaging, WABA number management and
  Instagram business account lookup via the Graph API.
- **phone**: Twilio SMS, inbound call forwarding and regulatory compliance.

Key Design Decisions
--------------------
- **One request, one answer**: the HTTP client never retries.  Only the
  booking coordinator retries, by moving on to the next candidate time.
- **Three error kinds**: every vendor failure is classified as
  ``auth_invalid``, ``transient`` or ``permanent``.  Auth failures always
  propagate so the host can prompt for re-authorisation; ordinary failures
  come back as results.
- **Explicit env**: handlers read credentials only from the env mapping
  passed to them (see ``config.py``).

Package Structure
-----------------
- ``integration_apps/config.py``: Centralized configuration and secret resolution
- ``integration_apps/errors.py``: Error taxonomy and classification
- ``integration_apps/registry.py``: App → tools/webhooks directory, LangChain export
- ``integration_apps/server.py``: FastAPI application
- ``integration_apps/main.py``: CLI for invoking a single tool
- ``integration_apps/services/``: Vendor and host platform HTTP clients, metrics
- ``integration_apps/booking/``: Slot reservation coordinator and auto-booking
- ``integration_apps/tools/``: Tool handlers per app
- ``integration_apps/webhooks/``: Webhook handlers and signature verification
- ``integration_apps/api/``: FastAPI routes and Pydantic schemas
"""
