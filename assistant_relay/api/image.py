"""Image generation endpoint.

Returns a placeholder image URL; no image model is called.
"""

import logging

from fastapi import APIRouter

from assistant_relay.models.schemas import ImageRequest, ImageUrlResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["image"])

PLACEHOLDER_IMAGE_URL = "/placeholder.svg?height=1024&width=1024"


@router.post("/image", response_model=ImageUrlResponse)
async def generate_image(body: ImageRequest) -> ImageUrlResponse:
    """Return the placeholder image for a prompt."""
    logger.info(f"Image requested for prompt of {len(body.prompt)} chars")
    return ImageUrlResponse(url=PLACEHOLDER_IMAGE_URL)
