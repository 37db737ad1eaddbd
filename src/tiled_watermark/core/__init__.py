# Watermark geometry constants
WATERMARK_ANGLE: int = 45  # Degrees, clockwise on screen
TEXT_DRAW_OFFSET: int = 10  # Margin before the first and after the last grid point
TEXT_X_REPEAT_FACTOR: int = 1  # Horizontal pitch = factor * font_size * len(text)
TEXT_Y_REPEAT_FACTOR: int = 4  # Vertical pitch = factor * font_size
CANVAS_SCALE: int = 4  # Tile is drawn on a canvas this many times the target size

# Translucent gray (alpha 51/255 ~ 0.2)
FILL_COLOR: tuple[int, int, int, int] = (169, 169, 169, 51)

# Still image output
IMAGE_FORMAT: str = "PNG"

# Video output settings
VIDEO_BITRATE: int = 2_000_000  # 2 Mbps
VIDEO_CODEC: str = "libx264"  # H.264
VIDEO_FORMAT: str = "mp4"
VIDEO_PIX_FMT: str = "yuv420p"

# In-memory frame layout (8-bit RGBA)
FRAME_PIX_FMT: str = "rgba"
FRAME_CHANNELS: int = 4
