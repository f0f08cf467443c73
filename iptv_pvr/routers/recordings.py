"""
Recordings API endpoints.
On-demand playlist entries are exposed as recordings.
"""
from fastapi import APIRouter, HTTPException
from iptv_pvr.services.iptv_data import get_iptv_data

router = APIRouter(prefix="/api/recordings", tags=["recordings"])


@router.get("")
async def list_recordings():
    """
    List media entries shown as recordings.
    """
    data = get_iptv_data()
    recordings = await data.get_recordings()
    return {"recordings": recordings, "total": len(recordings)}


@router.get("/{recording_uid}/stream")
async def get_recording_stream_properties(recording_uid: int):
    data = get_iptv_data()
    properties = await data.get_recording_stream_properties(recording_uid)
    if properties is None:
        raise HTTPException(status_code=404, detail="Recording not found")
    return {"recording_uid": recording_uid, "properties": properties}
