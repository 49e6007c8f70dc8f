from typing import Sequence

from .marker_map import MarkerMap
from .types import MarkerDetection, MarkerObservation


def select_observations(
    detections: Sequence[MarkerDetection], marker_map: MarkerMap
) -> list[MarkerObservation]:
    """
    Keep the detections whose ids belong to the map, in detector order.

    An empty result is a normal outcome; it just leaves nothing to solve with.
    """
    return [MarkerObservation(i, detections[i]) for i in marker_map.get_indices(detections)]
