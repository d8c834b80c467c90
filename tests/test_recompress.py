from __future__ import annotations

from io import BytesIO

import pytest
from conftest import make_jpeg
from PIL import Image

from automediarename.errors import CodecError
from automediarename.recompress import (
    JpegMetadata,
    compression_ratio,
    read_metadata,
    recompress_jpeg,
    reencode_jpeg,
    should_keep,
    transplant_exif,
)

FAKE_ICC = b"\x00\x00\x01\x00test icc profile" * 8
XMP_PACKET = b'<x:xmpmeta xmlns:x="adobe:ns:meta/"><rdf:RDF/></x:xmpmeta>'


def _orientation(data: bytes) -> int | None:
    with Image.open(BytesIO(data)) as img:
        return img.getexif().get(0x0112)


def _jpeg_with_profile() -> bytes:
    out = BytesIO()
    with Image.open(BytesIO(make_jpeg())) as source:
        source.save(
            out,
            format="JPEG",
            quality=95,
            exif=source.info["exif"],
            icc_profile=FAKE_ICC,
            xmp=XMP_PACKET,
        )
    return out.getvalue()


def test_read_metadata(jpeg_bytes):
    metadata = read_metadata(jpeg_bytes)
    assert metadata.exif is not None
    assert metadata.icc_profile is None
    assert metadata.xmp is None


def test_reencode_drops_exif(jpeg_bytes):
    reencoded = reencode_jpeg(jpeg_bytes, 50, read_metadata(jpeg_bytes))
    assert read_metadata(reencoded).exif is None
    assert _orientation(reencoded) is None


def test_transplant_restores_exif(jpeg_bytes):
    reencoded = reencode_jpeg(jpeg_bytes, 50)
    merged = transplant_exif(jpeg_bytes, reencoded)

    assert _orientation(merged) == 6
    with Image.open(BytesIO(merged)) as img:
        img.load()
        assert img.size == (128, 96)


def test_transplant_replaces_existing_exif():
    source = make_jpeg(orientation=3)
    target = make_jpeg(orientation=8, quality=40)
    assert _orientation(transplant_exif(source, target)) == 3


def test_transplant_without_source_exif_is_codec_error():
    with pytest.raises(CodecError):
        transplant_exif(make_jpeg(orientation=None), make_jpeg(quality=40))


def test_icc_profile_and_xmp_survive_recompression():
    data = _jpeg_with_profile()
    result = recompress_jpeg(data, quality=20, overwrite_ratio=0.9)

    assert result.kept
    metadata = read_metadata(result.data)
    assert metadata.icc_profile == FAKE_ICC
    assert metadata.xmp == XMP_PACKET
    assert _orientation(result.data) == 6


def test_reencode_without_metadata_writes_none(jpeg_bytes):
    assert read_metadata(reencode_jpeg(jpeg_bytes, 50, JpegMetadata())) == JpegMetadata()


def test_decode_failure_is_codec_error():
    with pytest.raises(CodecError):
        recompress_jpeg(b"\xff\xd8not really a jpeg", quality=50, overwrite_ratio=0.9)


def test_ratio_boundary_is_strict():
    assert compression_ratio(100, 80) == 0.8
    assert not should_keep(compression_ratio(100, 80), 0.8)
    assert should_keep(compression_ratio(100, 79), 0.8)


def test_recompress_keeps_smaller_output(jpeg_bytes):
    result = recompress_jpeg(jpeg_bytes, quality=20, overwrite_ratio=0.9)
    assert result.kept
    assert result.original_size == len(jpeg_bytes)
    assert result.recompressed_size == len(result.data)
    assert result.ratio == pytest.approx(len(result.data) / len(jpeg_bytes))
    assert _orientation(result.data) == 6


def test_recompress_without_exif():
    data = make_jpeg(orientation=None)
    result = recompress_jpeg(data, quality=20, overwrite_ratio=0.9)
    assert result.kept
    assert read_metadata(result.data).exif is None


def test_recompress_discards_when_not_small_enough(jpeg_bytes):
    result = recompress_jpeg(jpeg_bytes, quality=95, overwrite_ratio=0.01)
    assert not result.kept
    assert result.data is None


def test_decision_is_reproducible(jpeg_bytes):
    first = recompress_jpeg(jpeg_bytes, quality=40, overwrite_ratio=0.7)
    second = recompress_jpeg(jpeg_bytes, quality=40, overwrite_ratio=0.7)
    assert (first.kept, first.recompressed_size) == (second.kept, second.recompressed_size)
