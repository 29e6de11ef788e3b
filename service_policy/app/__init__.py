"""
Policy service package for the office platform.

Decides two things for the CRUD/HTTP layer in front of it:

- app.hierarchy: role ordering and the admin assignment table.
- app.scope: geographic admin scopes and containment.
- app.authorization: whether an administrator may activate, deactivate or
  (re)assign another principal.
- app.entitlements: whether an office currently holds a feature, and the
  workflow that activates feature groups.
- app.verification: external token verification for paid feature groups.
- app.persistence / app.cache: store adapters (in-memory, PostgreSQL, Redis).
- app.main: FastAPI surface.

Guidelines:
- Decision functions are pure and synchronous; I/O lives in the services
  that feed them.
- Expiry is enforced at read time; the background sweep is housekeeping.
"""
