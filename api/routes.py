"""
HTTP surface for the describe queue and the speech playback engine.

This module is I/O only: it validates requests, hands them to the engines
owned by InfraBootstrap (app.state.infra) and renders their state.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field

from infra.bootstrap import InfraBootstrap
from playback import AVAILABLE_TTS_VOICES, PlaybackEngine, TTSConfig, TTSVoice, find_voice
from playback.voices import VoiceEngine
from runtime.errors import InputError, QueueDisposedError

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Request models ────────────────────────────────────────────────────────


class DescribeBody(BaseModel):
    """Image as base64 text or a data:image/...;base64, URL."""
    image: str = Field(..., min_length=1)


class VoiceBody(BaseModel):
    language: str
    name: str
    engine: VoiceEngine
    display_name: str = ""


class PlayBody(BaseModel):
    text: str
    engine: Optional[VoiceEngine] = None
    voice: Optional[VoiceBody] = None
    voice_name: Optional[str] = Field(default=None, description="Catalogue voice name, e.g. Amy")


class SeekBody(BaseModel):
    time: float


class VolumeBody(BaseModel):
    volume: float


# ── Dependencies ──────────────────────────────────────────────────────────


def get_infra(request: Request) -> InfraBootstrap:
    infra = getattr(request.app.state, "infra", None)
    if infra is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return infra


def get_playback(infra: InfraBootstrap = Depends(get_infra)) -> PlaybackEngine:
    if infra.playback is None:
        raise HTTPException(status_code=503, detail="Speech playback disabled")
    return infra.playback


def _item_view(item) -> Dict[str, Any]:
    return {
        "id": item.id,
        "submitted_at": item.submitted_at.isoformat(),
        "retry_count": item.retry_count,
    }


# ── Describe ──────────────────────────────────────────────────────────────


def _submit(infra: InfraBootstrap, payload: Any) -> Dict[str, Any]:
    try:
        item_id = infra.submit_image(payload)
    except InputError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except QueueDisposedError:
        raise HTTPException(status_code=503, detail="Describe queue is shutting down")
    return {"id": item_id, "status": "pending"}


@router.post("/describe", status_code=202)
async def describe_image(body: DescribeBody, infra: InfraBootstrap = Depends(get_infra)):
    """Queue an image (base64 or data URL) for description."""
    return _submit(infra, body.image)


@router.post("/describe/raw", status_code=202)
async def describe_image_raw(request: Request, infra: InfraBootstrap = Depends(get_infra)):
    """Queue raw image bytes (request body) for description."""
    return _submit(infra, await request.body())


@router.get("/describe/queue")
async def describe_queue(infra: InfraBootstrap = Depends(get_infra)):
    stats = infra.queue.stats()
    return {
        "pending": [_item_view(item) for item in infra.queue.snapshot()],
        "stats": {
            "pending": stats.pending,
            "in_flight": stats.in_flight,
            "processed_count": stats.processed_count,
            "error_count": stats.error_count,
            "exhausted_count": stats.exhausted_count,
            "fallback_active": stats.fallback_active,
            "is_processing": stats.is_processing,
        },
        "options": stats.options,
    }


@router.get("/describe/results/{item_id}")
async def describe_result(item_id: str, infra: InfraBootstrap = Depends(get_infra)):
    result = infra.results.get(item_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Unknown item id")
    return result.to_dict()


# ── Speech ────────────────────────────────────────────────────────────────


def _play_config(body: PlayBody, current: TTSConfig) -> Optional[TTSConfig]:
    voice: Optional[TTSVoice] = None
    if body.voice is not None:
        voice = TTSVoice(**body.voice.model_dump())
    elif body.voice_name:
        voice = find_voice(body.voice_name, engine=body.engine) or find_voice(body.voice_name)
        if voice is None:
            raise HTTPException(status_code=400, detail=f"Unknown voice: {body.voice_name}")

    if voice is None and body.engine is None:
        return None
    return current.merge(engine=body.engine, voice=voice)


@router.post("/speech/play")
async def speech_play(body: PlayBody, engine: PlaybackEngine = Depends(get_playback)):
    """
    Speak text. Returns once playback has started or failed.

    Failures are reported in the returned state, never as HTTP errors.
    """
    await engine.play(body.text, _play_config(body, engine.config))
    return engine.state.to_dict()


@router.post("/speech/stop")
async def speech_stop(engine: PlaybackEngine = Depends(get_playback)):
    engine.stop()
    return engine.state.to_dict()


@router.post("/speech/seek")
async def speech_seek(body: SeekBody, engine: PlaybackEngine = Depends(get_playback)):
    engine.seek(body.time)
    return engine.state.to_dict()


@router.post("/speech/volume")
async def speech_volume(body: VolumeBody, engine: PlaybackEngine = Depends(get_playback)):
    engine.set_volume(body.volume)
    return engine.state.to_dict()


@router.get("/speech/state")
async def speech_state(engine: PlaybackEngine = Depends(get_playback)):
    state = engine.state.to_dict()
    state["config"] = engine.config.model_dump()
    state["producers"] = engine.producer_names
    return state


@router.get("/speech/voices")
async def speech_voices() -> List[Dict[str, Any]]:
    return [voice.model_dump() for voice in AVAILABLE_TTS_VOICES]


# ── Errors ────────────────────────────────────────────────────────────────


@router.get("/errors/recent")
async def recent_errors(
    limit: int = Query(default=10, ge=1, le=50),
    infra: InfraBootstrap = Depends(get_infra),
):
    return {
        "errors": [report.to_dict() for report in infra.error_handler.recent_errors(limit)],
        "stats": infra.error_handler.error_stats(),
    }
