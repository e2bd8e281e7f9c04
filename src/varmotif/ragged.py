from typing import List

import numpy as np


class RaggedData:
    """
    Flattened storage for a collection of matrices of different widths.

    The position rows of every matrix are stacked into a single ``(total_width, 4)``
    array and ``offsets`` marks where each matrix starts, so JIT kernels can walk a
    motif collection without padding.
    """

    def __init__(self, data: np.ndarray, offsets: np.ndarray):
        self.data = data
        self.offsets = offsets


def ragged_from_list(data_list: List[np.ndarray], dtype=np.float64, width: int = 4) -> RaggedData:
    """Stack ``(length, width)`` arrays into RaggedData."""
    offsets = np.zeros(len(data_list) + 1, dtype=np.int64)
    if not data_list:
        return RaggedData(np.empty((0, width), dtype=dtype), offsets)

    offsets[1:] = np.cumsum([arr.shape[0] for arr in data_list])
    data = np.ascontiguousarray(np.concatenate(data_list, axis=0), dtype=dtype)
    return RaggedData(data, offsets)
