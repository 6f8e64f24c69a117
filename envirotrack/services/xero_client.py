"""
Xero OAuth2 + Accounting API client

Handles the authorisation-code flow against identity.xero.com, keeps the
stored token fresh and wraps the Accounting API calls the app needs.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests

from envirotrack.models.xero_token import XeroToken
from envirotrack.services.xero_exceptions import XeroAPIError, XeroAuthError
from envirotrack.utils.logging_config import get_logger
from envirotrack.utils.mongo import ValidationError

logger = get_logger('envirotrack.xero.client')

AUTHORIZE_URL = 'https://login.xero.com/identity/connect/authorize'
TOKEN_URL = 'https://identity.xero.com/connect/token'
REVOKE_URL = 'https://identity.xero.com/connect/revocation'
CONNECTIONS_URL = 'https://api.xero.com/connections'
API_BASE_URL = 'https://api.xero.com/api.xro/2.0'

SCOPES = (
    'offline_access',
    'accounting.transactions',
    'accounting.contacts',
    'accounting.settings',
    'accounting.reports.read',
)

# Refresh the access token when it expires within this many seconds
REFRESH_MARGIN_SECONDS = 60
REQUEST_TIMEOUT = 30


class XeroClient:
    """Thin requests-based client around the stored Xero token."""

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: Optional[str],
        http=None,
    ):
        self.client_id = client_id or ''
        self.client_secret = client_secret or ''
        self.redirect_uri = redirect_uri or ''
        self.http = http or requests.Session()

        if not self.client_id or not self.client_secret:
            logger.warning(
                'Xero OAuth credentials not configured. '
                'Set XERO_CLIENT_ID and XERO_CLIENT_SECRET environment variables.'
            )

    @classmethod
    def from_config(cls, config) -> 'XeroClient':
        return cls(
            config.get('XERO_CLIENT_ID'),
            config.get('XERO_CLIENT_SECRET'),
            config.get('XERO_REDIRECT_URI'),
        )

    # OAuth flow

    def build_consent_url(self, state: str) -> str:
        """Authorisation URL the user is sent to; state is echoed back on callback."""
        if not self.client_id or not self.redirect_uri:
            raise XeroAuthError('Xero OAuth credentials are not configured')
        params = {
            'response_type': 'code',
            'client_id': self.client_id,
            'redirect_uri': self.redirect_uri,
            'scope': ' '.join(SCOPES),
            'state': state,
        }
        return f'{AUTHORIZE_URL}?{urlencode(params)}'

    def _token_request(self, data: Dict[str, str], action: str) -> Dict[str, Any]:
        try:
            response = self.http.post(
                TOKEN_URL,
                data={**data, 'client_id': self.client_id, 'client_secret': self.client_secret},
                headers={'Content-Type': 'application/x-www-form-urlencoded'},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error('%s request failed: %s', action, e)
            raise XeroAuthError(f'{action} request failed: {e}')

        if response.status_code != 200:
            logger.error('%s failed: %s %s', action, response.status_code, response.text[:200])
            raise XeroAuthError(f'{action} failed: {response.status_code}')

        token_set = response.json()
        if not token_set.get('access_token'):
            raise XeroAuthError('Invalid token set: missing access_token')
        if not token_set.get('expires_at') and token_set.get('expires_in'):
            token_set['expires_at'] = datetime.utcnow() + timedelta(seconds=int(token_set['expires_in']))
        return token_set

    def exchange_code(self, code: str) -> Dict[str, Any]:
        """Swap an authorisation code for a token set."""
        if not code:
            raise XeroAuthError('Missing authorisation code')
        logger.info('Exchanging Xero authorisation code for tokens')
        return self._token_request({
            'grant_type': 'authorization_code',
            'code': code,
            'redirect_uri': self.redirect_uri,
        }, 'Token exchange')

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        logger.info('Refreshing Xero access token')
        return self._token_request({
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
        }, 'Token refresh')

    def revoke(self, token: str) -> bool:
        """Revoke a token at Xero. Failure is logged; the caller clears local state anyway."""
        try:
            response = self.http.post(
                REVOKE_URL,
                data={'token': token, 'token_type_hint': 'access_token'},
                auth=(self.client_id, self.client_secret),
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.warning('Xero token revocation request failed: %s', e)
            return False
        if response.status_code != 200:
            logger.warning('Xero token revocation returned %s', response.status_code)
            return False
        return True

    def get_connections(self, access_token: str) -> List[Dict[str, Any]]:
        """Organisations (tenants) the token can access."""
        try:
            response = self.http.get(
                CONNECTIONS_URL,
                headers={'Authorization': f'Bearer {access_token}', 'Content-Type': 'application/json'},
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise XeroAPIError(f'Failed to get tenants: {e}')
        if response.status_code != 200:
            raise XeroAPIError(f'Failed to get tenants: {response.status_code}', upstream_status=response.status_code)
        return response.json() or []

    def connect(self, code: str) -> XeroToken:
        """Complete the OAuth callback: store tokens and the first tenant."""
        token_set = self.exchange_code(code)
        if not token_set.get('refresh_token'):
            raise XeroAuthError('Invalid token set: missing refresh_token')
        try:
            token = XeroToken.store(token_set)
        except ValidationError as e:
            raise XeroAuthError(str(e))

        tenants = self.get_connections(token.access_token)
        if not tenants:
            raise XeroAuthError(
                'No Xero organizations found. Please ensure you have access to at least one organization.'
            )
        XeroToken.set_tenant_id(tenants[0].get('tenantId'))
        logger.info('Connected to Xero tenant %s', tenants[0].get('tenantId'))
        return XeroToken.get()

    # Token handling

    def current_token(self) -> Optional[XeroToken]:
        """Stored token, refreshed when close to expiry. None when not connected."""
        token = XeroToken.get()
        if not token:
            return None
        if token.expires_within(REFRESH_MARGIN_SECONDS):
            try:
                token = XeroToken.store(self.refresh(token.refresh_token), tenant_id=token.tenant_id)
            except XeroAuthError:
                logger.error('Failed to refresh Xero token; the connection must be re-authorised')
                return None
        return token

    def require_token(self) -> XeroToken:
        token = self.current_token()
        if not token or not token.access_token:
            raise XeroAuthError('Not connected to Xero. Please connect first.')
        if not token.tenant_id:
            raise XeroAuthError('No Xero organization selected. Please connect to Xero first.')
        return token

    # Accounting API

    def request(self, method: str, path: str, params=None, json=None) -> Dict[str, Any]:
        token = self.require_token()
        url = f'{API_BASE_URL}/{path.lstrip("/")}'
        try:
            response = self.http.request(
                method,
                url,
                params=params,
                json=json,
                headers={
                    'Authorization': f'Bearer {token.access_token}',
                    'Xero-tenant-id': token.tenant_id,
                    'Accept': 'application/json',
                },
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            logger.error('Xero API request %s %s failed: %s', method, path, e)
            raise XeroAPIError(f'Xero API request failed: {e}')

        if response.status_code == 401:
            raise XeroAuthError('Xero connection expired. Please reconnect to Xero.')
        if response.status_code >= 400:
            logger.error('Xero API call failed: %s %s', response.status_code, response.text[:200])
            raise XeroAPIError(
                f'Xero API call failed: {response.status_code}',
                upstream_status=response.status_code,
                details={'body': response.text[:500]},
            )
        try:
            return response.json()
        except ValueError:
            raise XeroAPIError('Invalid response from Xero API')

    def get(self, path: str, params=None) -> Dict[str, Any]:
        return self.request('GET', path, params=params)

    def post(self, path: str, json=None) -> Dict[str, Any]:
        return self.request('POST', path, json=json)
