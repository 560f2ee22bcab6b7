"""
Compression codec streams.

The codec wraps a writable binary file object in a compressing stream so an
archive writer can stream its container straight through it. Only formats
that are not self-compressing need a codec.
"""

from typing import BinaryIO

import zstandard

from .formats import CompressType, CompressionLevels


def open_compressor_stream(
    fileobj: BinaryIO,
    compress_type: CompressType,
    levels: CompressionLevels
):
    """
    Wrap a file object in the format's compressing stream.

    Closing the returned stream ends the compressed frame but leaves
    ``fileobj`` open; the caller owns the underlying file.

    Args:
        fileobj: Writable binary destination
        compress_type: Artifact format
        levels: Validated compression levels

    Returns:
        Writable stream that compresses everything written to it

    Raises:
        ValueError: If the format compresses its own entries
    """
    if compress_type is CompressType.ZSTD:
        compressor = zstandard.ZstdCompressor(level=levels.zstd_level)
        return compressor.stream_writer(fileobj, closefd=False)

    raise ValueError(
        f"This format does not require secondary compression: {compress_type.value}"
    )
