from collections.abc import Generator
import pathlib
from typing import Any

import pytest
from syrupy.assertion import SnapshotAssertion
from syrupy.extensions.single_file import SingleFileSnapshotExtension, WriteMode
import yaml

from freight_watch.task import TaskService, task_service_context


class TextSnapshotExtension(SingleFileSnapshotExtension):
    """Store command output as a plain text file per test."""

    _write_mode = WriteMode.TEXT


def stage(name: str, current: str, tag: str, phase: str = "Succeeded") -> dict[str, Any]:
    """Return a recorded Stage event whose last promotion carries `tag`."""
    return {
        "scope": "demo",
        "kind": "Stage",
        "type": "MODIFIED",
        "object": {
            "metadata": {"name": name, "namespace": "demo"},
            "status": {
                "currentFreight": {"name": current},
                "lastPromotion": {
                    "status": {"phase": phase},
                    "freight": {
                        "name": current,
                        "images": [{"repoURL": "nginx", "tag": tag}],
                    },
                },
            },
        },
    }


@pytest.fixture(autouse=True)
def task_service_fixture() -> Generator[TaskService, None, None]:
    with task_service_context() as service:
        yield service


@pytest.fixture(name="recording")
def recording_fixture(tmp_path: pathlib.Path) -> pathlib.Path:
    """A recorded watch stream of two projects."""
    events = [
        {
            "scope": "demo",
            "kind": "Warehouse",
            "type": "ADDED",
            "object": {"metadata": {"name": "nginx", "namespace": "demo"}},
        },
        {
            "scope": "demo",
            "kind": "Freight",
            "type": "ADDED",
            "object": {"metadata": {"name": "f1", "namespace": "demo"}},
        },
        stage("prod", "f1", "1.0"),
        stage("prod", "f2", "2.0", phase="Running"),
        stage("prod", "f2", "2.0"),
        {
            "scope": "other",
            "kind": "Stage",
            "type": "ADDED",
            "object": {"metadata": {"name": "qa", "namespace": "other"}},
        },
    ]
    path = tmp_path / "events.yaml"
    path.write_text(yaml.dump_all(events, sort_keys=False))
    return path


@pytest.fixture(name="output_snapshot")
def output_snapshot_fixture(snapshot: SnapshotAssertion) -> SnapshotAssertion:
    """Snapshot of the printed output of a command."""
    return snapshot.use_extension(TextSnapshotExtension)
