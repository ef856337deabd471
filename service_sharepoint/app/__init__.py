"""
SharePoint Gateway Service package.

The gateway fronts a single SharePoint site, providing:
- API key authentication for every /api route
- Per-IP fixed-window rate limiting
- Cached reads of lists, folders, files and list items
- Free-text smart search mapped onto OData query templates

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: OAuth token provider and the SharePoint REST client.
- app.caching: TTL response cache.
- app.query: OData filter builder and search intent classifier.
- app.ratelimit: Fixed-window limiter and middleware.
- app.domain: Document operations, API key check, error translation.
"""
