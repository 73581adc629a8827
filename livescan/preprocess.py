"""
Image filters shared by anchor detection and bubble reading.
"""

import numpy as np
import cv2

# 5-tap binomial kernel, applied horizontally then vertically
BLUR_KERNEL = np.array([1, 4, 6, 4, 1], dtype=np.float32) / 16.0

CLOSE_KERNEL = np.ones((3, 3), dtype=np.uint8)


def to_gray(img: np.ndarray) -> np.ndarray:
    """
    Luminance 0.299R + 0.587G + 0.114B.

    Frames follow the OpenCV convention: 3 channels are BGR, 4 are BGRA.
    """
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def gaussian_blur(gray: np.ndarray) -> np.ndarray:
    """Separable blur, edges clamped"""
    return cv2.sepFilter2D(gray, -1, BLUR_KERNEL, BLUR_KERNEL, borderType=cv2.BORDER_REPLICATE)


def binarize(gray: np.ndarray, block_size: int = 21, offset: int = 5) -> np.ndarray:
    """
    Inverted local-mean threshold.

    A pixel is background (0) when it is brighter than the mean of its
    block_size x block_size neighbourhood minus offset, foreground (255)
    otherwise. Ink ends up white.
    """
    return cv2.adaptiveThreshold(
        gray, 255,
        cv2.ADAPTIVE_THRESH_MEAN_C,
        cv2.THRESH_BINARY_INV,
        block_size,
        offset,
    )


def close(mask: np.ndarray) -> np.ndarray:
    """3x3 dilate then erode, merges blobs broken up by noise"""
    return cv2.morphologyEx(mask, cv2.MORPH_CLOSE, CLOSE_KERNEL)
