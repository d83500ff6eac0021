"""
Canvas Options Schema
=====================

Pydantic model for the options of a VideoCanvas.

The same model is the request body of POST /video_preprocess, so it is
serialized with camelCase keys:

    {
        "url": "https://example.com/clip.mp4",
        "startTime": 0,
        "endTime": 5000,
        "seekStart": 0,
        "loop": false,
        "muted": false,
        "retryFetchs": 2,
        "ignoreCache": false
    }

All times are in milliseconds.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class VideoCanvasOptions(BaseModel):
    """
    Options for one video source.

    Attributes:
        url: Video URL
        start_time: Timeline time at which playback starts (ms)
        end_time: Timeline time at which playback ends (ms)
        format: Container format hint ("mp4" or "webm")
        seek_start: Trim start inside the source (ms)
        seek_end: Trim end inside the source (ms)
        autoplay: Whether the video plays automatically
        loop: Whether playback loops
        muted: Whether audio is muted
        retry_fetchs: Number of download retries
        ignore_cache: Bypass the preprocessor's download cache
        mask_url: Optional grayscale mask video URL
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    url: str = Field(..., min_length=1, description="Video URL")
    start_time: float = Field(..., ge=0, description="Playback start (ms)")
    end_time: float = Field(..., ge=0, description="Playback end (ms)")
    format: Optional[str] = Field(default=None, description="Container format hint")
    seek_start: float = Field(default=0, ge=0, description="Trim start (ms)")
    seek_end: Optional[float] = Field(default=None, ge=0, description="Trim end (ms)")
    autoplay: Optional[bool] = Field(default=None, description="Autoplay flag")
    loop: bool = Field(default=False, description="Loop playback")
    muted: bool = Field(default=False, description="Mute audio")
    retry_fetchs: int = Field(default=2, ge=0, description="Download retries")
    ignore_cache: bool = Field(default=False, description="Bypass download cache")
    mask_url: Optional[str] = Field(default=None, description="Mask video URL")

    @model_validator(mode="after")
    def _check_ranges(self) -> "VideoCanvasOptions":
        if self.end_time < self.start_time:
            raise ValueError(
                f"endTime ({self.end_time}) must not precede startTime ({self.start_time})"
            )
        if self.seek_end is not None and self.seek_end < self.seek_start:
            raise ValueError(
                f"seekEnd ({self.seek_end}) must not precede seekStart ({self.seek_start})"
            )
        return self

    def export(self) -> Dict[str, Any]:
        """Wire form sent to the preprocessing service."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
