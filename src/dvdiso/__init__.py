"""Convert video files into DVD-Video folders and ISO images."""

__version__ = "1.0.0"
