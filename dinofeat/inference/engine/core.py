# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Feature extraction engine.

Ties the image processor and a loaded backbone into one call: image in,
features out. Preprocessing happens on CPU; the pixel tensor is then moved
to wherever the model lives and the forward pass runs under
``torch.inference_mode()``.

The engine holds no mutable state between calls, so one instance can serve
several threads.
"""

import logging
import time
from typing import Optional, Sequence

import torch

from dinofeat.logging.logger import get_logger
from dinofeat.model.transformer import DinoOutput, DinoVisionTransformer, IntermediateLayerOutput
from dinofeat.processing.processor import ImageProcessor, ImageSource

logger: logging.Logger = get_logger(__name__)


class FeatureExtractor:
    """
    High-level feature extraction API.

    The CLI talks to this class. It doesn't know about argument parsing or
    output files; it takes images and returns tensors.

    Args:
        model: A backbone, normally from ``load_pretrained``.
        processor: Image preprocessing. Defaults to 224 px with ImageNet stats.
    """

    def __init__(
        self,
        model: DinoVisionTransformer,
        processor: Optional[ImageProcessor] = None,
    ) -> None:
        self._model = model
        self._processor = processor or ImageProcessor()

    @property
    def model(self) -> DinoVisionTransformer:
        return self._model

    @property
    def processor(self) -> ImageProcessor:
        return self._processor

    @property
    def device(self) -> torch.device:
        return next(self._model.parameters()).device

    def prepare(self, image: ImageSource) -> torch.Tensor:
        """Preprocess an image into a (1, size, size, 3) tensor on the model's device."""
        return self._processor(image).to(self.device)

    def extract(
        self,
        image: ImageSource,
        output_hidden_states: bool = False,
        output_attentions: bool = False,
    ) -> DinoOutput:
        """
        Run the full forward pass on one image.

        Raises:
            PreprocessError: If the image cannot be decoded.
        """
        pixel_values = self.prepare(image)
        start = time.monotonic()
        with torch.inference_mode():
            output = self._model(
                pixel_values,
                output_hidden_states=output_hidden_states,
                output_attentions=output_attentions,
            )
        logger.debug(
            "Features extracted",
            extra={
                "shape": list(output.last_hidden_state.shape),
                "elapsed_ms": round((time.monotonic() - start) * 1000, 2),
            },
        )
        return output

    def extract_intermediate(
        self,
        image: ImageSource,
        n: int = 1,
        indices: Optional[Sequence[int]] = None,
        reshape: bool = False,
        return_class_token: bool = False,
        return_register_tokens: bool = False,
        norm: bool = True,
    ) -> list[IntermediateLayerOutput]:
        """Collect selected block outputs for one image."""
        pixel_values = self.prepare(image)
        with torch.inference_mode():
            return self._model.get_intermediate_layers(
                pixel_values,
                n=n,
                indices=indices,
                reshape=reshape,
                return_class_token=return_class_token,
                return_register_tokens=return_register_tokens,
                norm=norm,
            )
