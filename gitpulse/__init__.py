"""
gitpulse -- Status cache and scan orchestration for a git repository dashboard

Keeps an up-to-date status snapshot for every repository under the
watched directories while running as few git commands as possible:
- cheap metadata timestamps decide what is stale
- a remote TTL bounds how old ahead/behind can get
- completed actions invalidate only the fields they can change
- bursts of refresh triggers collapse into at most two scans
"""

__version__ = "0.1.0"
