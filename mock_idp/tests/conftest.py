"""
Pytest configuration for mock_idp. Pin config through env before the app is imported,
so tests never touch the filesystem or depend on the developer's environment.
"""
import os

os.environ["JWT_SECRET"] = "test-signing-secret-that-is-long-enough-for-hs256"
os.environ["CREDENTIAL_STORE"] = "memory"
os.environ["AUTH_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["OAUTH_BASE_URL"] = "http://testserver"
os.environ["MOCK_TENANT_ID"] = "11111111-2222-4333-8444-555555555555"
for name in ("PKCE_STRICT", "MOCK_CLIENT_ID", "DEFAULT_SCOPE", "SERVICE_ROLES"):
    os.environ.pop(name, None)
