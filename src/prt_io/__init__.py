"""PRT IO - compressed particle stream writer and reader."""
from .binder import ChannelBinder
from .header import PRTHeader, read_header, write_header
from .reader import PRTReader
from .writer import PRTWriter

__all__ = ["ChannelBinder", "PRTHeader", "PRTReader", "PRTWriter", "read_header", "write_header"]
