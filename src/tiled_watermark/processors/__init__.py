from .image import SUPPORTED_IMAGE_FORMATS, add_watermark_to_image, is_supported_image
from .video import SUPPORTED_VIDEO_FORMATS, add_watermark_to_video, is_supported_video

__all__ = [
    "add_watermark_to_image",
    "add_watermark_to_video",
    "is_supported_image",
    "is_supported_video",
    "SUPPORTED_IMAGE_FORMATS",
    "SUPPORTED_VIDEO_FORMATS",
]
