"""
Logo similarity using perceptual hashing (pHash).

An image is resampled to a 32x32 luminance grid, transformed with a 2D
discrete cosine transform, and the 8x8 block of lowest frequencies is turned
into a 64-bit fingerprint (one bit per coefficient above the mean of the AC
coefficients). Fingerprints are compared by Hamming distance. A grayscale
intensity histogram, compared with the chi-squared distance, is blended in as
a secondary signal.

Decoding is delegated to Pillow and Hamming distance to imagehash; the
transform works on any pixel grid.
"""

import io
import logging
from functools import lru_cache
from typing import Sequence, Union

import imagehash
import numpy as np
from PIL import Image

from clearance_core.errors import ComparisonLengthMismatch, UnsupportedImage
from clearance_core.models import ImageFingerprint, hex_to_image_hash, round_half_up

logger = logging.getLogger(__name__)

FREQ_SIZE = 32  # grid the DCT runs on
HASH_SIZE = 8  # 8x8 = 64-bit hash
HISTOGRAM_BUCKETS = 256

HASH_WEIGHT = 0.7
HISTOGRAM_WEIGHT = 0.3

PNG_SIGNATURE = bytes.fromhex("89504e470d0a1a0a")
JPEG_SIGNATURE = bytes.fromhex("ffd8ff")
GIF_SIGNATURE = b"GIF"
WEBP_MARKER = b"WEBP"

HashLike = Union[ImageFingerprint, str]


def validate_image_buffer(buffer: bytes) -> bool:
    """Check a buffer for a PNG, JPEG, GIF or WebP signature."""
    if not buffer:
        return False
    return (
        buffer[:8] == PNG_SIGNATURE
        or buffer[:3] == JPEG_SIGNATURE
        or buffer[:3] == GIF_SIGNATURE
        or buffer[8:12] == WEBP_MARKER
    )


def load_pixels(buffer: bytes) -> np.ndarray:
    """
    Decode an image buffer into a 32x32 RGBA grid.

    Args:
        buffer: Encoded image bytes.

    Returns:
        np.ndarray: Array of shape (32, 32, 4), float64 in 0..255.

    Raises:
        UnsupportedImage: If the buffer has no known signature or cannot be decoded.
    """
    if not validate_image_buffer(buffer):
        raise UnsupportedImage(
            "Image buffer does not match a PNG, JPEG, GIF or WebP signature",
            context={"size": len(buffer or b"")},
        )

    try:
        with Image.open(io.BytesIO(buffer)) as img:
            pixels = np.array(img.convert("RGBA"))
        # Fully transparent pixels read as black
        pixels[pixels[..., 3] == 0, :3] = 0
        rgba = Image.fromarray(pixels).resize((FREQ_SIZE, FREQ_SIZE), Image.Resampling.BILINEAR)
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise UnsupportedImage(f"Failed to decode image: {e}", context={"reason": "decode"}) from e

    return np.asarray(rgba, dtype=np.float64)


def _resample(pixels: np.ndarray) -> np.ndarray:
    # Pillow infers the mode from the array shape
    img = Image.fromarray(np.clip(pixels, 0, 255).astype(np.uint8))
    resized = img.resize((FREQ_SIZE, FREQ_SIZE), Image.Resampling.BILINEAR)
    return np.asarray(resized, dtype=np.float64)


def to_luminance(pixels: np.ndarray) -> np.ndarray:
    """
    Convert a pixel grid to a 32x32 luminance matrix (0.299R + 0.587G + 0.114B).

    Accepts grayscale (H, W), RGB (H, W, 3) or RGBA (H, W, 4) arrays; alpha is
    ignored. Grids of another size are resampled to 32x32 first.
    """
    arr = np.asarray(pixels, dtype=np.float64)
    if arr.ndim not in (2, 3) or (arr.ndim == 3 and arr.shape[2] not in (3, 4)):
        raise ValueError(f"Unsupported pixel grid shape {arr.shape}")

    if arr.shape[:2] != (FREQ_SIZE, FREQ_SIZE):
        arr = _resample(arr)

    if arr.ndim == 2:
        return arr
    return 0.299 * arr[..., 0] + 0.587 * arr[..., 1] + 0.114 * arr[..., 2]


@lru_cache(maxsize=4)
def dct_matrix(n: int) -> np.ndarray:
    """Orthonormal DCT-II basis: row u holds c(u) * cos(pi * (2x + 1) * u / 2n)."""
    u = np.arange(n)[:, None]
    x = np.arange(n)[None, :]
    basis = np.cos(np.pi * (2 * x + 1) * u / (2 * n))
    scale = np.full(n, np.sqrt(2.0 / n))
    scale[0] = np.sqrt(1.0 / n)
    matrix = basis * scale[:, None]
    matrix.setflags(write=False)
    return matrix


def dct2d(matrix: np.ndarray) -> np.ndarray:
    """Separable 2D DCT: a 1D DCT over every row, then over every resulting column."""
    n = matrix.shape[0]
    if matrix.shape != (n, n):
        raise ValueError("DCT input must be square")
    basis = dct_matrix(n)
    rows = matrix @ basis.T
    return basis @ rows


def intensity_histogram(luminance: np.ndarray) -> np.ndarray:
    """256-bucket histogram of luminance values rounded half up."""
    buckets = np.clip(np.floor(luminance + 0.5), 0, HISTOGRAM_BUCKETS - 1).astype(np.int64)
    return np.bincount(buckets.ravel(), minlength=HISTOGRAM_BUCKETS)


def perceptual_hash(pixels: np.ndarray) -> ImageFingerprint:
    """
    Compute the 64-bit perceptual hash (and histogram) of a pixel grid.

    The DC coefficient is left out of the mean, so a uniform brightness
    shift moves at most the first bit.
    """
    luminance = to_luminance(pixels)
    coefficients = dct2d(luminance)[:HASH_SIZE, :HASH_SIZE].ravel()
    mean = coefficients[1:].mean()

    bits = "".join("1" if value > mean else "0" for value in coefficients)
    histogram = tuple(int(v) for v in intensity_histogram(luminance))
    return ImageFingerprint(bits=bits, histogram=histogram)


def fingerprint_image(buffer: bytes) -> ImageFingerprint:
    """Decode an image buffer and fingerprint it."""
    return perceptual_hash(load_pixels(buffer))


def hash_image(buffer: bytes) -> str:
    """
    Hex perceptual hash of an encoded image, for storage or transmission.

    Raises:
        UnsupportedImage: If the buffer is not a recognised or decodable image.
    """
    return fingerprint_image(buffer).to_hex()


def _bits(value: HashLike) -> str:
    return value.bits if isinstance(value, ImageFingerprint) else value


def _image_hash(value: HashLike) -> imagehash.ImageHash:
    if isinstance(value, ImageFingerprint):
        return value.to_image_hash()
    return imagehash.ImageHash(np.array([bit == "1" for bit in value], dtype=bool))


def hamming_distance(hash1: HashLike, hash2: HashLike) -> int:
    """Count of differing bits between two fingerprints (or '0'/'1' strings)."""
    bits1, bits2 = _bits(hash1), _bits(hash2)
    if len(bits1) != len(bits2):
        raise ComparisonLengthMismatch(
            "Hash lengths must match", context={"length1": len(bits1), "length2": len(bits2)}
        )
    return int(_image_hash(hash1) - _image_hash(hash2))


def compare_hashes(hash1: HashLike, hash2: HashLike) -> int:
    """
    Similarity of two hashes, 0-100.

    A Hamming distance of 0 gives 100; every bit differing gives 0.
    """
    distance = hamming_distance(hash1, hash2)
    max_distance = len(_bits(hash1))
    if max_distance == 0:
        return 100
    return round_half_up((max_distance - distance) / max_distance * 100)


def compare_hex_hashes(hex1: str, hex2: str) -> int:
    """Similarity of two hashes stored in hex form, 0-100."""
    if len(hex1) != len(hex2):
        raise ComparisonLengthMismatch("Hash lengths must match", context={"length1": len(hex1), "length2": len(hex2)})
    h1, h2 = hex_to_image_hash(hex1), hex_to_image_hash(hex2)
    max_distance = h1.hash.size
    return round_half_up((max_distance - int(h1 - h2)) / max_distance * 100)


def compare_histograms(hist1: Sequence[int], hist2: Sequence[int]) -> int:
    """
    Similarity of two intensity histograms from the chi-squared distance, 0-100.

    Buckets empty in both histograms are skipped. Chi-squared is unbounded, so
    it is mapped as ``max(0, 100 - chi2 / 20)``.
    """
    if len(hist1) != len(hist2):
        raise ComparisonLengthMismatch(
            "Histogram lengths must match", context={"length1": len(hist1), "length2": len(hist2)}
        )

    a = np.asarray(hist1, dtype=np.float64)
    b = np.asarray(hist2, dtype=np.float64)
    total = a + b
    mask = total > 0
    chi_squared = float(np.sum((a[mask] - b[mask]) ** 2 / total[mask]))

    return round_half_up(max(0.0, 100.0 - chi_squared / 20.0))


def compare_fingerprints(fp1: ImageFingerprint, fp2: ImageFingerprint) -> int:
    """
    Combined logo similarity: 70% hash similarity, 30% histogram similarity.

    Fingerprints restored from hex carry no histogram; the hash similarity is
    then used on its own.
    """
    hash_similarity = compare_hashes(fp1, fp2)
    if not fp1.histogram or not fp2.histogram:
        return hash_similarity

    histogram_similarity = compare_histograms(fp1.histogram, fp2.histogram)
    return round_half_up(hash_similarity * HASH_WEIGHT + histogram_similarity * HISTOGRAM_WEIGHT)


def compare_images(buffer1: bytes, buffer2: bytes) -> int:
    """
    Main image similarity function: perceptual hash blended with histogram.

    Buffers without a known image signature are rejected up front. A buffer
    that passes the signature check but fails to decode yields 0, since logo
    comparison is advisory only.

    Raises:
        UnsupportedImage: If either buffer lacks a known image signature.
    """
    for index, buffer in enumerate((buffer1, buffer2), start=1):
        if not validate_image_buffer(buffer):
            raise UnsupportedImage(
                "Image buffer does not match a PNG, JPEG, GIF or WebP signature",
                context={"argument": index},
            )

    try:
        fp1 = fingerprint_image(buffer1)
        fp2 = fingerprint_image(buffer2)
    except UnsupportedImage as e:
        logger.warning("Error calculating image similarity: %s", e.message, extra={"context": e.context})
        return 0

    return compare_fingerprints(fp1, fp2)
