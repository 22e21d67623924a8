import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

UTMB_API_URL = "https://utmb.world/runner/{runner_id}.{runner_name}.api"

async def fetch_runner_score(runner_id: str, runner_name: str, transport: httpx.AsyncBaseTransport = None) -> Optional[dict]:
    """
    Fetch the runner's UTMB index and ITRA score.
    Returns None when the runner is not configured or the lookup fails.
    """
    if not runner_id or not runner_name:
        return None

    url = UTMB_API_URL.format(runner_id=runner_id, runner_name=runner_name)
    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.get(url)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Error fetching UTMB/ITRA score: {e}")
        return None

    return {
        "utmb_index": data.get("utmbIndex"),
        "itra_score": data.get("itraScore"),
    }
