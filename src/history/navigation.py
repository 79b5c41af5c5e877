from typing import Callable, Optional


def normalize_index(index: int, count: int, cycle: bool) -> int:
    """Clamp ``index`` into ``[0, count)`` or wrap it to the opposite end when ``cycle`` is set.

    Returns -1 for an empty sequence.
    """
    if count == 0:
        return -1
    if index >= count:
        return 0 if cycle else count - 1
    if index < 0:
        return count - 1 if cycle else 0
    return index


def next_visible_index(
    current: int,
    requested: int,
    count: int,
    cycle: bool,
    is_hidden: Callable[[int], bool],
) -> Optional[int]:
    """Resolve a keyboard-style selection request to the nearest visible row.

    Starts at the normalized ``requested`` row and keeps stepping in the
    direction of travel while rows are hidden. Without ``cycle`` the walk stops
    at either end; with it the walk stops after coming back to its start.
    """
    step = 1 if current < requested else -1

    index = normalize_index(requested, count, cycle)
    if index == -1:
        return None

    start = index
    while is_hidden(index):
        index = normalize_index(index + step, count, cycle)
        if (not cycle and index in (0, count - 1)) or index == start:
            break

    if is_hidden(index):
        return None
    return index
