"""
Chunking and order preserving parallel execution.
"""

from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, List, Sequence

import numpy as np
from loguru import logger

from .config import get_plan


def chunk_vector(x: Sequence, n_chunks: int) -> List[list]:
    """
    Split ``x`` into at most ``n_chunks`` contiguous chunks.

    Chunk sizes differ by at most one, order is preserved and no chunk is
    empty.

    Args:
        x: Elements to split
        n_chunks: Requested number of chunks

    Returns:
        List of chunks, each a list
    """
    if n_chunks < 1:
        raise ValueError(f"n_chunks must be positive, got {n_chunks}")
    x = list(x)
    if not x:
        return []
    n_chunks = min(n_chunks, len(x))
    bounds = np.array_split(np.arange(len(x)), n_chunks)
    return [x[idx[0]:idx[-1] + 1] for idx in bounds]


def parallel_map(fn: Callable, chunks: Sequence, **kwargs: Any) -> List[Any]:
    """
    Apply ``fn(chunk, **kwargs)`` to every chunk using the active plan.

    Results are returned in chunk order regardless of completion order.
    Under the process plan ``fn`` and ``kwargs`` must be picklable.
    """
    plan = get_plan()
    func = partial(fn, **kwargs) if kwargs else fn

    if plan.kind == "sequential" or len(chunks) <= 1:
        return [func(chunk) for chunk in chunks]

    executor_cls = ThreadPoolExecutor if plan.kind == "thread" else ProcessPoolExecutor
    logger.debug(f"Dispatching {len(chunks)} chunks to {plan.workers} {plan.kind} workers")
    with executor_cls(max_workers=plan.workers) as executor:
        return list(executor.map(func, chunks))
