"""
Crosswalk Sentinel — pedestrian/vehicle proximity alerting from SDSM feeds.

Contains the core logic for the roadside alert pipeline:
  - crosswalk_sentinel.geo.convert       — scaled reference point + offsets → lon/lat
  - crosswalk_sentinel.geo.distance      — planar degree-space proximity metric
  - crosswalk_sentinel.geo.crosswalk     — crosswalk polygon membership
  - crosswalk_sentinel.data.models       — tracked entities and alert records
  - crosswalk_sentinel.data.parser       — SDSM message parsing
  - crosswalk_sentinel.tracking.tracker  — live registry of vehicles and pedestrians
  - crosswalk_sentinel.alerts.engine     — per-cycle pedestrian alert evaluation
  - crosswalk_sentinel.pipeline          — ingest → prune → evaluate facade
  - crosswalk_sentinel.config            — YAML config loading and validation
  - crosswalk_sentinel.logging_utils     — project-wide logger factory
"""

__version__ = "0.3.0"
