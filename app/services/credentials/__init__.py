"""
Connector Credentials
OAuth credential storage, validation and single-flight refresh
"""
from app.services.credentials.authority import OAuthTokenAuthority
from app.services.credentials.vault import CredentialVault

__all__ = ["OAuthTokenAuthority", "CredentialVault"]
