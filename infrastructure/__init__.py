"""
DEREN INFRASTRUCTURE - System-Level Modules

This package contains infrastructure components:
- config: TOML configuration loading
- event_bus: Pub/sub notifications for graph and mission changes
- logger: Mutation event logging (ring buffer + JSONL files)
- diagnostics: Mission phase and capability timing
- project_io: Project file save/load
"""
