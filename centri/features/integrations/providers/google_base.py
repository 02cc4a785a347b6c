from centri.features.integrations.providers.base import ProviderAdapter

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


class GoogleAdapter(ProviderAdapter):
    """Shared OAuth wiring for every Google Workspace product."""

    auth_url = GOOGLE_AUTH_URL
    token_url = GOOGLE_TOKEN_URL
    client_id_setting = "GOOGLE_CLIENT_ID"
    client_secret_setting = "GOOGLE_CLIENT_SECRET"
    supports_refresh = True
    # Offline access + forced consent so Google always returns a refresh token
    extra_auth_params = {"access_type": "offline", "prompt": "consent"}
