"""Chat widget core.

- transcript model and submission state machine (session.py)
- hosted / local provider dispatch with reply normalization (dispatch.py)
- per-user in-memory session registry (registry.py)
"""
