from __future__ import annotations

import logging
from dataclasses import dataclass
from io import BytesIO

import piexif
from PIL import Image

from automediarename.errors import CodecError

LOGGER = logging.getLogger(__name__)

ENCODABLE_MODES = {"RGB", "L", "CMYK"}


@dataclass(frozen=True)
class JpegMetadata:
    exif: bytes | None = None
    icc_profile: bytes | None = None
    xmp: bytes | None = None


@dataclass(frozen=True)
class RecompressionResult:
    original_size: int
    recompressed_size: int
    ratio: float
    data: bytes | None

    @property
    def kept(self) -> bool:
        return self.data is not None


def read_metadata(data: bytes) -> JpegMetadata:
    try:
        with Image.open(BytesIO(data)) as img:
            info = img.info
            return JpegMetadata(
                exif=info.get("exif") or None,
                icc_profile=info.get("icc_profile") or None,
                xmp=info.get("xmp") or None,
            )
    except Exception as exc:  # noqa: BLE001
        raise CodecError(f"{type(exc).__name__}: {exc}") from exc


def reencode_jpeg(data: bytes, quality: int, metadata: JpegMetadata | None = None) -> bytes:
    """Decode ``data`` and encode it again at ``quality``.

    Exif is never written here. The ICC profile and XMP packet of
    ``metadata`` are, when given.
    """
    metadata = metadata or JpegMetadata()
    try:
        with Image.open(BytesIO(data)) as img:
            img.load()
            if img.mode not in ENCODABLE_MODES:
                img = img.convert("RGB")
            out = BytesIO()
            img.save(
                out,
                format="JPEG",
                quality=int(quality),
                icc_profile=metadata.icc_profile,
                xmp=metadata.xmp,
            )
    except Exception as exc:  # noqa: BLE001
        raise CodecError(f"{type(exc).__name__}: {exc}") from exc
    return out.getvalue()


def transplant_exif(original: bytes, reencoded: bytes) -> bytes:
    """Copy the Exif block of ``original`` into ``reencoded``."""
    out = BytesIO()
    try:
        piexif.transplant(original, reencoded, out)
    except Exception as exc:  # noqa: BLE001
        raise CodecError(f"Exif transplant failed: {type(exc).__name__}: {exc}") from exc
    return out.getvalue()


def compression_ratio(original_size: int, recompressed_size: int) -> float:
    if original_size <= 0:
        raise CodecError("empty original")
    return recompressed_size / original_size


def should_keep(ratio: float, overwrite_ratio: float) -> bool:
    return ratio < overwrite_ratio


def recompress_jpeg(data: bytes, *, quality: int, overwrite_ratio: float) -> RecompressionResult:
    """Re-encode a JPEG and decide whether the result is worth keeping.

    The decision depends only on the byte sizes: the recompressed stream is
    kept when ``recompressed / original < overwrite_ratio``.
    """
    metadata = read_metadata(data)
    reencoded = reencode_jpeg(data, quality, metadata)
    candidate = transplant_exif(data, reencoded) if metadata.exif else reencoded
    ratio = compression_ratio(len(data), len(candidate))
    keep = should_keep(ratio, overwrite_ratio)
    LOGGER.debug("Recompressed %d -> %d bytes (ratio %.3f, keep=%s)", len(data), len(candidate), ratio, keep)
    return RecompressionResult(
        original_size=len(data),
        recompressed_size=len(candidate),
        ratio=ratio,
        data=candidate if keep else None,
    )
