"""Library for formatting output."""

from abc import ABC, abstractmethod
from typing import Generator, Any

import json
import sys
from typing import TextIO
import yaml

from freight_watch.store import DistanceMatrix


PADDING = 4


def format_columns(
    headers: list[str], rows: list[list[str]]
) -> Generator[str, None, None]:
    """Yield rows aligned to the widest value of each column."""
    data = [headers] + rows
    widths = [max(len(str(row[i])) for row in data) for i in range(len(headers))]
    format_string = "".join(f"{{:{w + PADDING}}}" for w in widths)
    for row in data:
        yield format_string.format(*[str(x) for x in row]).rstrip()


def matrix_rows(matrix: DistanceMatrix) -> list[dict[str, Any]]:
    """Flatten a distance matrix into sorted rows."""
    return [
        {"repo": repo, "tag": tag, "target": target, "distance": distance}
        for repo, tags in sorted(matrix.items())
        for tag, targets in sorted(tags.items())
        for target, distance in sorted(targets.items())
    ]


class PrintFormatter:
    """A formatter that prints human readable console output."""

    def __init__(self, keys: list[str] | None = None):
        """Initialize the PrintFormatter with optional keys to print."""
        self._keys = keys

    def format(self, data: list[dict[str, Any]]) -> Generator[str, None, None]:
        """Format the data objects."""
        if not data:
            return
        keys = self._keys if self._keys is not None else list(data[0])
        rows = [[str(row[key]) for key in keys] for row in data]
        yield from format_columns([key.upper() for key in keys], rows)

    def print(self, data: list[dict[str, Any]], file: TextIO = sys.stdout) -> None:
        """Output the data objects."""
        for result in self.format(data):
            print(result, file=file)


class StructFormatter(ABC):
    """A formatter that prints structured objects."""

    @abstractmethod
    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        """Print the data objects."""


class YamlFormatter(StructFormatter):
    """A formatter that prints yaml output."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        print(yaml.dump(data, sort_keys=False, explicit_start=True), end="", file=file)


class JsonFormatter(StructFormatter):
    """A formatter that prints json output."""

    def print(self, data: Any, file: TextIO = sys.stdout) -> None:
        json.dump(data, sort_keys=False, indent=4, fp=file)
        print(file=file)
