"""
EPG (Electronic Program Guide) and catchup API endpoints.
"""
from fastapi import APIRouter, Query, HTTPException
import time
from typing import Optional

from iptv_pvr.models.epg import EpgTag
from iptv_pvr.services.iptv_data import get_iptv_data

router = APIRouter(prefix="/api/epg", tags=["epg"])


@router.get("/channel/{channel_uid}")
async def get_channel_epg(
    channel_uid: int,
    start: Optional[int] = Query(None, description="Window start (epoch seconds), default now"),
    hours: int = Query(24, ge=1, le=168, description="Hours of EPG data to return")
):
    """
    Get EPG data for a specific channel.

    Not all channels have EPG data; an empty list is returned for those.
    """
    data = get_iptv_data()
    if await data.get_channel(channel_uid) is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    window_start = int(time.time()) if start is None else start
    programs = await data.get_epg_for_channel(channel_uid, window_start, window_start + hours * 3600)

    return {
        "channel_uid": channel_uid,
        "programs": programs,
        "count": len(programs)
    }


@router.get("/channel/{channel_uid}/playable")
async def is_tag_playable(
    channel_uid: int,
    start: int = Query(..., description="Programme start (epoch seconds)"),
    end: int = Query(..., description="Programme end (epoch seconds)"),
):
    """
    Check whether a programme can be played back as catchup.
    """
    data = get_iptv_data()
    tag = EpgTag(unique_channel_id=channel_uid, start_time=start, end_time=end)
    playable = await data.is_epg_tag_playable(tag)
    if playable is None:
        raise HTTPException(status_code=501, detail="Catchup is disabled")
    return {"channel_uid": channel_uid, "start": start, "end": end, "playable": playable}


@router.get("/channel/{channel_uid}/stream")
async def get_tag_stream_properties(
    channel_uid: int,
    start: int = Query(..., description="Programme start (epoch seconds)"),
    end: int = Query(..., description="Programme end (epoch seconds)"),
):
    """
    Get stream properties for playing a programme from the guide.
    """
    data = get_iptv_data()
    if await data.get_channel(channel_uid) is None:
        raise HTTPException(status_code=404, detail="Channel not found")

    tag = EpgTag(unique_channel_id=channel_uid, start_time=start, end_time=end)
    properties = await data.get_epg_tag_stream_properties(tag)
    if properties is None:
        raise HTTPException(status_code=502, detail="No catchup URL available for this programme")
    return {"channel_uid": channel_uid, "properties": properties}
