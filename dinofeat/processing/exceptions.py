# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Errors raised while turning an input image into model pixels.

These are input errors, not bugs: the caller can retry with another image.
"""


class PreprocessError(Exception):
    """Base for all preprocessing errors."""


class InvalidImageError(PreprocessError):
    """Raised when the source cannot be opened or decoded as an image."""


class PixelDataUnavailableError(PreprocessError):
    """Raised when a decoded image does not yield a usable RGB pixel buffer."""
