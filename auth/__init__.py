"""
auth — bearer-token boundary.

Provides:
  • signed token creation & verification
  • ``get_current_user_id`` FastAPI dependency
"""
