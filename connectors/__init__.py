"""
connectors — OAuth integration module for cloud-storage providers.

Provides a generic connector framework that handles:
  • PKCE state / verifier / challenge generation
  • OAuth2 authorize-URL generation and code → token exchange
  • One-time state storage for in-flight linking attempts
  • Per-user refresh-token storage, Fernet-encrypted at rest
  • Access-token resolution with refresh and caching
  • Best-effort revocation on disconnect

Each provider (Google, Microsoft) is a subclass of BaseOAuthClient.
"""
