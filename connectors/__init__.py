"""ERP Connectors - DIA ERP integration.

This package handles everything that talks to the DIA web-service API:
- Session management (login, refresh before expiry)
- API communication (list, detail, update calls)
- Static per-type method and field mappings

Sync and approval code depend on connectors.dia only through
DiaApiClient, DiaSessionManager and the mapping tables.
"""
