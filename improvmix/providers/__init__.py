from __future__ import annotations

from .layer_api import GenerateLayerResponse, HttpLayerProvider, LayerProvider

__all__ = ["GenerateLayerResponse", "HttpLayerProvider", "LayerProvider"]
