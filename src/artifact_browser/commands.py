"""Commands sent by UI collaborators to a BrowserSession.

Every user intent is an immutable command object; ``BrowserSession.dispatch``
processes one command to completion and returns a CommandResult. Renderers
read state through ``BrowserSession.snapshot()`` and never write back.

Example:
    >>> session.dispatch(ZoomIn())
    >>> session.dispatch(Select(0.25, 0.5))
    >>> snapshot = session.snapshot()
"""
from __future__ import annotations

from typing import Any, Sequence

from attrs import field, frozen


# Navigation
@frozen
class NextSegment:
    pass


@frozen
class PreviousSegment:
    pass


@frozen
class GotoSegment:
    index: int  # 0-based index into the display segmentation


# Horizontal zoom
@frozen
class ZoomIn:
    pass


@frozen
class ZoomOut:
    pass


@frozen
class SetWindow:
    duration: float  # seconds


# Vertical scaling
@frozen
class ScaleUp:
    pass


@frozen
class ScaleDown:
    pass


@frozen
class SetYLim:
    spec: Any  # "maxabs", "maxmin" or [ymin, ymax]


# Annotation types and search
@frozen
class SelectArtifactType:
    artifact_type: int | str


@frozen
class FindPrevious:
    pass


@frozen
class FindNext:
    pass


# Selection behaviour
@frozen
class CycleSelectMode:
    pass


@frozen
class SetSelectMode:
    mode: str


@frozen
class Select:
    """Commit a horizontal selection, positions normalized to the visible panel.

    ``hlim`` defaults to the horizontal limits of the current snapshot. When
    ``analysis`` names a registered analysis the selection is forwarded to it
    instead of editing annotations.
    """

    start: float
    stop: float
    hlim: tuple[float, float] | None = None
    analysis: str | None = None


# Channels
@frozen
class ChannelsUp:
    pass


@frozen
class ChannelsDown:
    pass


@frozen
class SelectChannels:
    labels: Sequence[str] = field(converter=tuple)


# Preprocessing
@frozen
class SetPreproc:
    options: dict[str, Any] = field(factory=dict)
