"""
Channel, group and provider API endpoints.
"""
from fastapi import APIRouter, Query, HTTPException
from typing import Optional
from iptv_pvr.config import get_settings
from iptv_pvr.services.iptv_data import get_iptv_data

router = APIRouter(prefix="/api", tags=["channels"])


@router.get("/channels")
async def list_channels(
    radio: Optional[bool] = Query(None, description="true = radio only, false = tv only, omit for both"),
):
    """
    List loaded channels in playlist order.
    """
    data = get_iptv_data()
    channels = await data.get_channels(radio)
    return {
        "channels": channels,
        "total": len(channels),
    }


@router.get("/channels/{channel_uid}")
async def get_channel(channel_uid: int):
    """
    Get a single channel by unique id.
    """
    data = get_iptv_data()
    channel = await data.get_channel(channel_uid)
    if channel is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return channel


@router.get("/channels/{channel_uid}/stream")
async def get_channel_stream_properties(channel_uid: int):
    """
    Get the stream properties the player needs for live playback.
    """
    data = get_iptv_data()
    properties = await data.get_channel_stream_properties(channel_uid)
    if properties is None:
        raise HTTPException(status_code=404, detail="Channel not found")
    return {"channel_uid": channel_uid, "properties": properties}


@router.get("/channels/{channel_uid}/signal")
async def get_signal_status(channel_uid: int):
    """
    Get signal status (always reported OK for IPTV sources).
    """
    data = get_iptv_data()
    return data.get_signal_status(channel_uid)


@router.get("/groups")
async def list_channel_groups(
    radio: bool = Query(False, description="List radio groups instead of tv groups"),
):
    """
    List channel groups that have at least one channel.
    """
    data = get_iptv_data()
    groups = await data.get_channel_groups(radio)
    return {"groups": groups, "total": len(groups)}


@router.get("/groups/{group_name}/members")
async def list_channel_group_members(
    group_name: str,
    radio: bool = Query(False, description="Look the group up among radio groups"),
):
    """
    List the channels of one group in membership order.
    """
    data = get_iptv_data()
    members = await data.get_channel_group_members(group_name, radio)
    return {"group_name": group_name, "channels": members, "total": len(members)}


@router.get("/providers")
async def list_providers():
    """
    List providers declared by the playlist.
    """
    data = get_iptv_data()
    providers = await data.get_providers()
    return {"providers": providers}


@router.post("/reload")
async def trigger_reload(x_admin_key: Optional[str] = Query(None, alias="X-Admin-Key")):
    """
    Reload playlist and EPG now.
    Requires the X-Admin-Key query parameter.
    Set IPTV_ADMIN_API_KEY environment variable to configure.
    """
    settings = get_settings()

    if x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing admin API key")

    data = get_iptv_data()
    loaded = await data.reload()
    return {"status": "completed" if loaded else "failed", "stats": await data.get_stats()}
