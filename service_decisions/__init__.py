"""
Decisions Service package for the Decision Engine.

This package resolves parameter values for a unit (a user, a device, a
session) against a layered config bundle and makes trackable decisions.
It provides:

- app.hashing: FNV-1a hashing and bucket assignment.
- app.rules: Fail-closed condition evaluation over context paths.
- app.resolution: The resolution engine and per-entity weighted selection.
- app.decision: Caller-facing evaluator, decision cache and plugins.
- app.adapters: HTTP client for the decisions service endpoints.
- app.main: API surface for resolution, per-entity decisions and health.

Guidelines:
- Resolution is deterministic; the same bundle and context give the same
  assignments on every platform.
- Evaluation never raises for missing data; it falls back to defaults.
- Keep bucket assignment stable: changing hashing reassigns live units.
"""
