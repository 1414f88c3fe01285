"""
Run Status Poller — trigger a run and overlay its progress on the graph.

Lifecycle::

    IDLE ── trigger_run() ──▶ RUNNING ──(run status leaves "running")──▶ COMPLETED / FAILED

While RUNNING, every tick fetches the overall run status and the
per-node-per-status document counts. The counts replace the overlay
wholesale; nothing from the previous tick survives. The poller never
touches the canonical graph.

Upload and run-creation failures do not raise. They are recorded in
``banner`` until dismissed. A run whose documents fail inside the
engine is a different thing and shows up as ``"failed"`` samples in the
overlay.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from logging import getLogger
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from flowcanvas.exceptions import RunTriggerError
from flowcanvas.workflow.node_catalogue import default_node_name
from flowcanvas.workflow.polling import ScopedPoller
from flowcanvas.workflow.workflow_model import (
    DEFAULT_PORT,
    NodeType,
    WorkflowEdge,
    WorkflowNodeInstance,
)

logger = getLogger(__name__)

FileRef = Union[str, Path]


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StatusSample(BaseModel):
    """One ``(node, status[, output port]) → count`` row of a poll tick."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    node_id: str
    status: str
    count: int = 0
    output_port: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("output_port", "outputPort"),
    )

    @property
    def port_tag(self) -> str:
        """Output port this sample left through; unnamed ports use ``"default"``."""
        return self.output_port or DEFAULT_PORT


# Highest precedence first; "completed" is handled separately
STATUS_PRECEDENCE = ("processing", "failed", "held", "unrouted")

Overlay = Dict[str, List[StatusSample]]


# ============================================================================
# Overlay derivation (pure)
# ============================================================================


def build_overlay(rows: Iterable[Any]) -> Overlay:
    """Group raw node-status rows by node id."""
    overlay: Overlay = {}
    for row in rows or []:
        sample = row if isinstance(row, StatusSample) else StatusSample.model_validate(row)
        overlay.setdefault(sample.node_id, []).append(sample)
    return overlay


def dominant_status(samples: Sequence[StatusSample]) -> Optional[str]:
    """The single status to display for a node.

    processing > failed > held > unrouted; "completed" only when every
    sample for the node is completed. ``None`` when nothing applies.
    """
    live = [s for s in samples if s.count > 0]
    if not live:
        return None
    statuses = {s.status for s in live}
    for status in STATUS_PRECEDENCE:
        if status in statuses:
            return status
    if statuses == {"completed"}:
        return "completed"
    return None


def active_output_ports(samples: Sequence[StatusSample]) -> Set[str]:
    """Output ports that carried at least one completed document."""
    return {
        s.port_tag for s in samples
        if s.status == "completed" and s.count > 0
    }


def run_entry_targets(nodes: Iterable[WorkflowNodeInstance]) -> List[Tuple[Optional[str], str]]:
    """Upload slots for the run dialog: one per MANUAL_UPLOAD node.

    Without manual upload nodes there is a single unscoped slot
    (``None``) and the backend picks the entry nodes.
    """
    manual = [
        (n.id, n.name or default_node_name(n.node_type))
        for n in nodes if n.node_type is NodeType.MANUAL_UPLOAD
    ]
    return manual or [(None, "Upload documents")]


# ============================================================================
# Poller
# ============================================================================


class RunStatusPoller(ScopedPoller):
    """Drives one run at a time and exposes its overlay."""

    name = "run-status"

    def __init__(self, api: Any, interval: float = 2.0) -> None:
        super().__init__(interval)
        self._api = api
        self.state = RunState.IDLE
        self.run_id: Optional[str] = None
        self.run: Optional[Dict[str, Any]] = None
        self.overlay: Overlay = {}
        self.banner: Optional[str] = None
        self.uploading = False

    # ── Triggering ──

    async def trigger_run(
        self,
        workflow_id: str,
        uploads: Mapping[Optional[str], Sequence[FileRef]],
    ) -> Optional[str]:
        """Upload documents per trigger node, create a run, start polling.

        ``uploads`` maps a MANUAL_UPLOAD node id (or ``None`` for the
        unscoped set) to files. Empty sets are skipped. Returns the run
        id, or ``None`` when triggering failed (see ``banner``).
        """
        self.banner = None
        self.uploading = True
        try:
            run = await self._create_run(workflow_id, uploads)
        except Exception as e:
            error = e if isinstance(e, RunTriggerError) else RunTriggerError(
                f"Failed to start run: {e}", cause=e,
            )
            self.banner = error.message
            logger.warning(f"Run trigger failed for workflow {workflow_id}: {error.message}")
            self._notify()
            return None
        finally:
            self.uploading = False

        run_id = str(run["id"])
        logger.info(f"Run created: {run_id} for workflow {workflow_id}")
        self.watch(run_id)
        return run_id

    async def _create_run(
        self,
        workflow_id: str,
        uploads: Mapping[Optional[str], Sequence[FileRef]],
    ) -> Dict[str, Any]:
        entries: List[Tuple[Optional[str], List[str]]] = []
        for node_id, files in uploads.items():
            if not files:
                continue
            docs = await asyncio.gather(*(self._api.upload_document(f) for f in files))
            entries.append((node_id, [str(d["id"]) for d in docs]))

        if not entries:
            raise RunTriggerError("Select at least one document to run")

        if all(node_id is None for node_id, _ in entries):
            document_ids = [doc_id for _, ids in entries for doc_id in ids]
            return await self._api.create_run(workflow_id, document_ids=document_ids)

        return await self._api.create_run(
            workflow_id,
            entries=[
                {"node_id": node_id, "document_ids": ids}
                for node_id, ids in entries
            ],
        )

    def watch(self, run_id: str) -> None:
        """Start polling an existing run."""
        self.run_id = run_id
        self.run = None
        self.overlay = {}
        self.state = RunState.RUNNING
        self._start_loop(run_id)
        self._notify()

    def dismiss_banner(self) -> None:
        self.banner = None
        self._notify()

    def reset(self) -> None:
        """Stop polling and clear the overlay."""
        self.stop()
        self.state = RunState.IDLE
        self.run_id = None
        self.run = None
        self.overlay = {}
        self._notify()

    # ── Polling ──

    async def tick(self) -> None:
        run_id = self.run_id
        if run_id is None or self.state is not RunState.RUNNING:
            return
        try:
            run, rows = await asyncio.gather(
                self._api.get_run(run_id),
                self._api.get_node_statuses(run_id),
            )
            overlay = build_overlay(rows)
        except Exception as e:
            logger.debug(f"Run {run_id} poll failed: {e}")
            return

        # A newer run may have started while this tick was in flight
        if run_id != self.run_id:
            return

        self.run = run
        self.overlay = overlay
        logger.debug(f"Run {run_id} tick: {sum(len(v) for v in overlay.values())} samples")

        status = (run or {}).get("status", RunState.RUNNING.value)
        if status != RunState.RUNNING.value:
            self.state = RunState.COMPLETED if status == "completed" else RunState.FAILED
            self.stop()
            logger.info(f"Run {run_id} finished: {status}")
        self._notify()

    # ── Overlay accessors ──

    def node_display_status(self, node_id: str) -> Optional[str]:
        return dominant_status(self.overlay.get(node_id, []))

    def active_output_ports(self, node_id: str) -> Set[str]:
        return active_output_ports(self.overlay.get(node_id, []))

    def edge_is_active(self, edge: WorkflowEdge) -> bool:
        return edge.source_port in self.active_output_ports(edge.source)

    def node_counts(self, node_id: str) -> Dict[str, int]:
        """Total document count per status for one node."""
        counts: Dict[str, int] = {}
        for sample in self.overlay.get(node_id, []):
            counts[sample.status] = counts.get(sample.status, 0) + sample.count
        return counts
