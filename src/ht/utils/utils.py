from pathlib import Path
from typing import Any, Tuple

import orjson


def singleton(class_):
    """
    Class decorator: the first call builds the instance, later calls return it
    and ignore their arguments.

    The returned factory carries a reset() that drops the instance, e.g.
    between tests:

        @singleton
        class Settings:
            ...

        Settings("a.yaml") is Settings("b.yaml")  # True, path stays "a.yaml"
        Settings.reset()
    """

    instances = {}

    def getinstance(*args, **kwargs):
        if class_ not in instances:
            instances[class_] = class_(*args, **kwargs)
        return instances[class_]

    def reset():
        instances.clear()

    getinstance.reset = reset  # type: ignore
    return getinstance  # type: ignore


def read_json(path: str | Path) -> Any:
    """
    Reads a JSON file from the specified path.

    Args:
        path (str | Path): The path to the JSON file.
    Returns:
        The decoded JSON document.
    """
    with open(path, 'rb') as f:
        return orjson.loads(f.read())


def parse_zoom_levels(spec: str | int) -> Tuple[int, ...]:
    """
    Parse zoom levels given as "3", "0-4" or "2,5,7".

    Returns:
        Sorted tuple of distinct zoom levels
    """
    if isinstance(spec, int):
        return (spec,)
    levels = set()
    for part in str(spec).split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            lo, hi = (int(p) for p in part.split("-", 1))
            if hi < lo:
                raise ValueError(f"invalid zoom range '{part}'")
            levels.update(range(lo, hi + 1))
        else:
            levels.add(int(part))
    if not levels or min(levels) < 0:
        raise ValueError(f"invalid zoom levels '{spec}'")
    return tuple(sorted(levels))
