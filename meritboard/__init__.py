"""
MeritBoard — Moderator Merit Points for Discord
================================================
Rewards moderators with merit points for disciplinary and community
actions, keeps per-guild configuration, and publishes a weekly
leaderboard before resetting weekly totals.

Package layout::

    meritboard/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Presentation constants + week helper
    ├── errors.py          # Domain error hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # ORM models (5 tables)
    │   └── seed.py        # Default settings seeder
    ├── engine/
    │   ├── catalog.py     # Action kinds, point values, global rates
    │   ├── pending.py     # Pending-sanction accumulator
    │   └── schedule.py    # Cron expression validation
    ├── services/
    │   ├── ledger_service.py       # Merit accounts + action log
    │   ├── rank_service.py         # Leaderboards + rank positions
    │   ├── guild_config_service.py # Guild config + report recipients
    │   ├── settings_service.py     # Global rates persistence
    │   ├── sanction_service.py     # Single declare + batch commit
    │   ├── rotation_service.py     # Weekly publish-then-reset
    │   ├── report_service.py       # DM fan-out with self-pruning
    │   ├── welcome_service.py      # Welcome template rendering
    │   └── embeds.py               # Discord embed builders
    └── bot/
        ├── core.py        # Bot subclass, cog loader, component router
        └── cogs/          # moderation, config, meta, social, membership, tasks
"""

__version__ = "0.1.0"
