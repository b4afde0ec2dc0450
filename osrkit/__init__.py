"""Read, write and inspect osu! replay files, with a pure-Python LZMA decoder."""

__version__ = "0.1.0"

__all__ = ["cli", "lzmacore", "lzmadec", "lzmaprops", "osr"]