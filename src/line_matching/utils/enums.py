from enum import Enum

import numpy as np


class EndpointOrder(Enum):
    """Pairing of observed endpoints with map line endpoints."""

    DIRECT = 0  # start <-> start, end <-> end
    SWAPPED = 1  # start <-> end, end <-> start


def oriented_endpoints(
    start: np.ndarray, end: np.ndarray, order: EndpointOrder
) -> tuple[np.ndarray, np.ndarray]:
    """
    Return the endpoints of a line in the order given by the pairing.

    Args:
        start: First endpoint of the line.
        end: Second endpoint of the line.
        order: Endpoint pairing to apply.

    Returns:
        The (first, second) endpoints as seen under the pairing.

    Raises:
        ValueError: If the pairing is not supported.

    """
    if order == EndpointOrder.DIRECT:
        return start, end
    if order == EndpointOrder.SWAPPED:
        return end, start
    msg = "Unsupported endpoint order"
    raise ValueError(msg)
