"""Freight-watch replay action.

Replays a recorded event stream through the full synchronization pipeline and
prints the resulting cache and distance matrix.
"""

import logging
from argparse import ArgumentParser, _SubParsersAction as SubParsersAction
from collections.abc import AsyncGenerator
import pathlib
import sys
from typing import Any, cast

import aiofiles

from freight_watch.config import BackstopConfig, DistanceConfig, SyncConfig
from freight_watch.exceptions import InputException
from freight_watch.manifest import ResourceKind, WatchEvent, read_events
from freight_watch.store import InMemoryCache
from freight_watch.sync import ProjectSync
from freight_watch.task import get_task_service
from freight_watch.watch import QueueEventSource, decode_sse

from .format import JsonFormatter, PrintFormatter, YamlFormatter, matrix_rows

_LOGGER = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


async def _read_chunks(path: pathlib.Path) -> AsyncGenerator[str, None]:
    async with aiofiles.open(str(path)) as body:
        while chunk := await body.read(CHUNK_SIZE):
            yield chunk


async def _load_events(
    path: pathlib.Path, fmt: str, scope: str | None, kind: str | None
) -> list[WatchEvent]:
    if fmt == "yaml":
        return await read_events(path)
    if not scope or not kind:
        raise InputException("Replaying an sse recording requires --scope and --kind")
    return [
        event
        async for event in decode_sse(_read_chunks(path), scope, ResourceKind(kind))
    ]


class ReplayAction:
    """Replay a recorded watch stream."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "replay",
                help="Replay a recorded watch stream into the cache",
                description="Apply a recorded stream of watch events and print the resulting cache and distance matrix.",
            ),
        )
        args.add_argument(
            "path",
            help="Path to the recorded events",
            type=pathlib.Path,
        )
        args.add_argument(
            "--format",
            choices=["yaml", "sse"],
            default="yaml",
            help="Format of the recording",
        )
        args.add_argument(
            "--scope",
            help="Only replay this project (required for sse recordings)",
        )
        args.add_argument(
            "--kind",
            choices=[kind.value for kind in ResourceKind],
            help="Kind of resource in an sse recording",
        )
        args.add_argument(
            "--max-distance",
            type=int,
            default=None,
            help="Evict versions whose distance exceeds this value",
        )
        args.add_argument(
            "--output",
            "-o",
            choices=["table", "yaml", "json"],
            default="table",
            help="Output format of the command",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        path: pathlib.Path,
        output: str = "table",
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        scope = kwargs.get("scope")
        events = await _load_events(
            path, kwargs.get("format") or "yaml", scope, kwargs.get("kind")
        )
        if scope:
            events = [event for event in events if event.scope == scope]
        scopes = list(dict.fromkeys(event.scope for event in events))
        _LOGGER.debug("Replaying %d events for %d projects", len(events), len(scopes))

        # Listings are not recorded, so a refetch could only empty the cache
        config = SyncConfig(
            distance=DistanceConfig(max_distance=kwargs.get("max_distance")),
            backstop=BackstopConfig(enabled=False),
        )
        cache = InMemoryCache()
        source = QueueEventSource()
        for event in events:
            source.publish(event)
        results: dict[str, Any] = {}
        for project in scopes:
            for kind in config.kinds:
                source.finish(project, kind)
            sync = ProjectSync(cache, source, project, config)
            await sync.start()
            await sync.wait()
            await get_task_service().block_till_done()
            results[project] = {
                "resources": {
                    str(kind): [resource.name for resource in sync.resources(kind)]
                    for kind in config.kinds
                },
                "matrix": sync.matrix,
                "missing": sorted(sync.backstop.missing(project)),
            }
            for name in results[project]["missing"]:
                print(
                    f"warning: {project} references unknown Freight {name}",
                    file=sys.stderr,
                )

        if output == "yaml":
            YamlFormatter().print(results, file=sys.stdout)
        elif output == "json":
            JsonFormatter().print(results, file=sys.stdout)
        else:
            self._print_table(results)

    def _print_table(self, results: dict[str, Any]) -> None:
        resources = [
            {"project": project, "kind": kind, "name": name}
            for project, result in results.items()
            for kind, names in result["resources"].items()
            for name in names
        ]
        PrintFormatter().print(resources, file=sys.stdout)
        distances = [
            {"project": project, **row}
            for project, result in results.items()
            for row in matrix_rows(result["matrix"])
        ]
        if distances:
            print()
            PrintFormatter().print(distances, file=sys.stdout)
