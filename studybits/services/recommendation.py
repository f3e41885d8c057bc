import logging

import requests

from studybits.errors import TransientNetwork

logger = logging.getLogger(__name__)

FIND_SIMILAR_PATH = '/find_similar_courses'


class RecommendationClient:
    """HTTP client for the external "similar courses" service."""

    def __init__(self, base_url, timeout=10.0, session=None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._http = session or requests

    @classmethod
    def from_config(cls, app_config):
        return cls(
            app_config.get('RECOMMENDATION_API_URL', 'https://study-bits-api.vercel.app'),
            timeout=float(app_config.get('RECOMMENDATION_TIMEOUT', 10)),
        )

    def find_similar_courses(self, combination):
        """POST one combination to the service.

        Args:
            combination: the (course, unit) pair to look up

        Returns:
            The decoded JSON body (a dict, possibly without results)

        Raises:
            TransientNetwork: on connection errors, timeouts, non-2xx
                statuses or an undecodable body
        """
        url = self.base_url + FIND_SIMILAR_PATH
        try:
            response = self._http.post(url, json=combination.to_payload(), timeout=self.timeout)
            response.raise_for_status()
            body = response.json()
        except requests.RequestException as e:
            raise TransientNetwork(f'recommendation call failed for {combination}: {e}') from e
        except ValueError as e:
            raise TransientNetwork(f'recommendation body for {combination} is not JSON') from e
        if not isinstance(body, dict):
            return {}
        return body
