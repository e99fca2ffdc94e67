"""File IO implementations for tiered-fileio."""

from tiered_fileio.io.files import FileInfo
from tiered_fileio.io.mapping import MappedInputFile, MappedLocation, PathMappingFileIO
from tiered_fileio.io.s3 import S3FileIO

__all__ = [
    "FileInfo",
    "MappedInputFile",
    "MappedLocation",
    "PathMappingFileIO",
    "S3FileIO",
]
