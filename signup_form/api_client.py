"""HTTP client the signup form uses to talk to the waitlist API"""
from typing import Any, Dict, Optional

import requests

from utils.errors import UpstreamUnavailable, error_from_response
from utils.logger import get_logger

logger = get_logger('signup_form.api')


class WaitlistApiClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 15.0):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise UpstreamUnavailable('Unable to reach the server, please try again') from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not 200 <= response.status_code < 300:
            raise error_from_response(response.status_code, body)
        return body

    def signup(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /api/signup; returns the `data` block (user, client_secret, steps)"""
        return self._request('POST', '/api/signup', json=payload).get('data') or {}

    def create_setup_intent(self, user_id: str) -> Dict[str, Any]:
        return self._request('POST', '/api/payments/setup-intent', json={'user_id': user_id}).get('data') or {}

    def confirm_payment(self, user_id: str, setup_intent_id: str) -> Dict[str, Any]:
        body = self._request('POST', '/api/payments/confirm', json={
            'user_id': user_id,
            'setup_intent_id': setup_intent_id,
        })
        return body.get('data') or {}

    def lookup_referral(self, code: str) -> Dict[str, Any]:
        return self._request('GET', '/api/referral', params={'code': code})

    def referral_stats(self, user_id: str) -> Dict[str, Any]:
        return self._request('POST', '/api/referral/stats', json={'user_id': user_id}).get('stats') or {}
