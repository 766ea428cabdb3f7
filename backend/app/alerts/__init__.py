"""
alerts — Emergency alert broadcasting.

Sub-modules:
    channels/       — Messaging providers (live SMTP email, simulated)
    alert_service   — BroadcastEngine: roster → dispatch → report
    staff_alerts    — Geo-targeted, persisted staff alerts
    geo_fence       — Radius targeting for staff alerts
    store           — Roster and staff-alert data access
    db_models       — ORM tables
    models          — Data structures shared across the subsystem
"""
