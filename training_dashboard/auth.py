import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .deps import get_strava_client
from .errors import StoreError, UpstreamError
from .strava import StravaClient, StravaTokenStore, sync_recent_activities

router = APIRouter()
logger = logging.getLogger(__name__)

@router.get("/strava")
def start_strava_auth(client: StravaClient = Depends(get_strava_client)):
    """
    Redirect the browser to Strava's OAuth consent page.
    """
    if not settings.STRAVA_CLIENT_ID:
        raise HTTPException(status_code=500, detail="Server misconfiguration: Missing STRAVA_CLIENT_ID")

    return RedirectResponse(url=client.authorize_url(settings.STRAVA_REDIRECT_URI))

@router.get("/strava/callback")
async def strava_callback(
    code: Optional[str] = None,
    db: Session = Depends(get_db),
    client: StravaClient = Depends(get_strava_client),
):
    """
    Handle Strava OAuth callback.
    Exchange the code for tokens, store them, run a first sync and redirect to the front-end.
    """
    if not code:
        raise HTTPException(status_code=400, detail="No authorization code received")
    if not settings.STRAVA_CLIENT_ID or not settings.STRAVA_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Server misconfiguration")

    try:
        token_data = await client.exchange_code(code)
        StravaTokenStore(db).write_token_response(token_data)
        await sync_recent_activities(db, client, settings)
    except (UpstreamError, StoreError, KeyError) as e:
        logger.error(f"Error in Strava callback: {e}")
        raise HTTPException(status_code=500, detail="Failed to exchange code for token")

    return RedirectResponse(url=f"{settings.FRONTEND_URL}/auth-success.html")
