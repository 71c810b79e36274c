from __future__ import annotations


class ImprovMixError(Exception):
    """Base error for the improvmix library."""


class InvalidConfigError(ImprovMixError):
    """Raised when settings, genres, tempos or layer ids cannot be validated."""


class SourceError(ImprovMixError):
    """Raised when an audio source cannot be read or fetched."""


class DecodeError(ImprovMixError):
    """Raised when acquired bytes are not decodable audio."""


class InvalidStateError(ImprovMixError):
    """Raised when an audio graph operation does not fit the node's current state."""


class PlaybackError(ImprovMixError):
    """Raised when the output device cannot be opened."""


class LayerGenerationError(ImprovMixError):
    """Raised when the layer generation endpoint fails to produce audio."""
