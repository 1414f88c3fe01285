"""
Workflow Inspector — live document browsers for a workflow.

Three pollers share the same cadence and wholesale-replace discipline
as the run poller:

* ``FlowSummaryPoller``       — per-node processing / held / failed counts
* ``NodeDocumentsPoller``     — documents at one node, one tab at a time
* ``OrphanedDocumentsPoller`` — held documents whose node was deleted

Switching the inspected node or tab always stops the previous loop
before the next one starts, so two loops for the same browser never
run side by side.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from logging import getLogger
from typing import Any, Dict, Iterable, List, Optional, Set

from flowcanvas.workflow.node_catalogue import HOLD_CAPABLE_TYPES, TRIGGER_TYPES
from flowcanvas.workflow.polling import ScopedPoller
from flowcanvas.workflow.port_resolver import resolve_ports
from flowcanvas.workflow.workflow_model import NodeType

logger = getLogger(__name__)


# ============================================================================
# Tabs & display helpers
# ============================================================================


@dataclass(frozen=True)
class InspectorTab:
    """One tab of the node document browser.

    ``type`` is the ``tab`` query value sent to the API; unrouted tabs
    also carry the output port they list.
    """
    id: str
    label: str
    type: str
    port_id: Optional[str] = None


def node_tabs(node_type: NodeType, config: Any = None) -> List[InspectorTab]:
    """Tabs shown for a node, in display order.

    Hold-capable types get a held tab; every output port gets its own
    unrouted tab.
    """
    node_type = NodeType(node_type)
    ports = resolve_ports(node_type, config).outputs
    unrouted = [
        InspectorTab(
            id=f"unrouted:{p.id}",
            label="Unrouted" if len(ports) == 1 else f"Unrouted ({p.label})",
            type="unrouted",
            port_id=p.id,
        )
        for p in ports
    ]
    failed = InspectorTab(id="failed", label="Failed", type="failed")

    if node_type is NodeType.RECONCILIATION:
        return [InspectorTab("held", "Held Documents", "held"), *unrouted, failed]

    tabs: List[InspectorTab] = []
    if node_type in HOLD_CAPABLE_TYPES:
        tabs.append(InspectorTab("held", "Held", "held"))
    tabs.append(InspectorTab("processing", "Processing", "processing"))
    tabs.extend(unrouted)
    tabs.append(failed)
    return tabs


def display_name(doc: Dict[str, Any]) -> str:
    """File name shown for a document instance.

    Older records keep the split-branch index in ``metadata._branch_index``
    instead of the file name; it is appended before the extension.
    """
    file_name = doc.get("file_name")
    meta = doc.get("metadata") or {}
    if isinstance(meta, str):
        try:
            meta = json.loads(meta)
        except ValueError:
            meta = {}
    branch = meta.get("_branch_index") if isinstance(meta, dict) else None
    if branch is None or not file_name:
        return file_name or "—"
    stem, dot, ext = file_name.rpartition(".")
    if not dot:
        return f"{file_name}({branch})"
    return f"{stem}({branch}).{ext}"


def trigger_nodes_in(summary: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    trigger_values = {t.value for t in TRIGGER_TYPES}
    return [n for n in summary if n.get("node_type") in trigger_values]


def default_retrigger_targets(summary: Iterable[Dict[str, Any]]) -> List[str]:
    """Preselect the trigger node when the workflow has exactly one."""
    triggers = trigger_nodes_in(summary)
    return [triggers[0]["id"]] if len(triggers) == 1 else []


# ============================================================================
# Summary poller
# ============================================================================


class FlowSummaryPoller(ScopedPoller):
    """Polls per-node document counts for the inspector sidebar."""

    name = "flow-summary"

    def __init__(self, api: Any, workflow_id: str, interval: float = 2.0) -> None:
        super().__init__(interval)
        self._api = api
        self.workflow_id = workflow_id
        self.summary: List[Dict[str, Any]] = []

    def start(self) -> None:
        self._start_loop(self.workflow_id)

    async def tick(self) -> None:
        try:
            summary = await self._api.get_inspector_summary(self.workflow_id)
        except Exception as e:
            logger.debug(f"Flow summary poll failed for {self.workflow_id}: {e}")
            return
        self.summary = list(summary or [])
        self._notify()

    def get(self, node_id: str) -> Optional[Dict[str, Any]]:
        for row in self.summary:
            if row.get("id") == node_id:
                return row
        return None

    @property
    def trigger_nodes(self) -> List[Dict[str, Any]]:
        return trigger_nodes_in(self.summary)


# ============================================================================
# Document list pollers
# ============================================================================


class DocumentListPoller(ScopedPoller):
    """Shared document-list behaviour: selection, delete, re-trigger."""

    def __init__(self, api: Any, workflow_id: str, interval: float = 2.0) -> None:
        super().__init__(interval)
        self._api = api
        self.workflow_id = workflow_id
        self.documents: List[Dict[str, Any]] = []
        self.selected: Set[str] = set()
        self.loading = False

    def _replace(self, documents: Optional[List[Dict[str, Any]]]) -> None:
        self.documents = list(documents or [])
        present = {d.get("id") for d in self.documents}
        self.selected &= present
        self.loading = False
        self._notify()

    def _reset(self) -> None:
        self.documents = []
        self.selected = set()
        self.loading = True

    # ── Selection ──

    def toggle_select(self, exec_id: str) -> None:
        if exec_id in self.selected:
            self.selected.discard(exec_id)
        else:
            self.selected.add(exec_id)
        self._notify()

    def toggle_all(self) -> None:
        if self.documents and len(self.selected) == len(self.documents):
            self.selected = set()
        else:
            self.selected = {d["id"] for d in self.documents}
        self._notify()

    # ── Actions ──

    async def delete_documents(self, exec_ids: Iterable[str]) -> None:
        """Delete document instances and drop them from the list."""
        ids = list(exec_ids)
        await asyncio.gather(
            *(self._api.delete_document(self.workflow_id, i) for i in ids)
        )
        gone = set(ids)
        self.documents = [d for d in self.documents if d.get("id") not in gone]
        self.selected -= gone
        logger.info(f"Deleted {len(ids)} document instance(s) in workflow {self.workflow_id}")
        self._notify()

    async def retrigger(
        self, exec_ids: Iterable[str], trigger_node_ids: Iterable[str],
    ) -> Optional[str]:
        """Re-inject documents into trigger nodes. Returns the new run id."""
        ids = list(exec_ids)
        targets = list(trigger_node_ids)
        if not ids or not targets:
            raise ValueError("Re-trigger needs at least one document and one trigger node")
        result = await self._api.retrigger(self.workflow_id, ids, targets)
        run_id = (result or {}).get("runId")
        logger.info(
            f"Re-triggered {len(ids)} document(s) into {len(targets)} trigger node(s)"
            f" (run {run_id})"
        )
        await self.tick()
        return run_id


class NodeDocumentsPoller(DocumentListPoller):
    """Lists documents at one node for the active tab."""

    name = "node-documents"

    def __init__(self, api: Any, workflow_id: str, interval: float = 2.0) -> None:
        super().__init__(api, workflow_id, interval)
        self.node_id: Optional[str] = None
        self.tabs: List[InspectorTab] = []
        self.active_tab: Optional[InspectorTab] = None

    @property
    def scope(self) -> Optional[str]:
        if self.node_id is None or self.active_tab is None:
            return None
        return f"{self.node_id}:{self.active_tab.id}"

    def inspect(
        self,
        node_id: str,
        node_type: NodeType,
        config: Any = None,
        tab_id: Optional[str] = None,
    ) -> None:
        """Point the browser at a node; defaults to its first tab."""
        self.stop()
        self.node_id = node_id
        self.tabs = node_tabs(node_type, config)
        self.active_tab = self._find_tab(tab_id) or self.tabs[0]
        self._restart()

    def select_tab(self, tab_id: str) -> None:
        tab = self._find_tab(tab_id)
        if tab is None:
            raise ValueError(f"Unknown tab '{tab_id}' for node {self.node_id}")
        if self.active_tab is not None and tab.id == self.active_tab.id and self.active:
            return
        self.stop()
        self.active_tab = tab
        self._restart()

    def close(self) -> None:
        """Stop browsing; keeps nothing from the previous scope."""
        self.stop()
        self.node_id = None
        self.tabs = []
        self.active_tab = None
        self.documents = []
        self.selected = set()

    def _find_tab(self, tab_id: Optional[str]) -> Optional[InspectorTab]:
        if tab_id is None:
            return None
        return next((t for t in self.tabs if t.id == tab_id), None)

    def _restart(self) -> None:
        self._reset()
        self._start_loop(self.scope)
        self._notify()

    async def tick(self) -> None:
        scope = self.scope
        tab = self.active_tab
        if scope is None:
            return
        try:
            docs = await self._api.get_node_documents(
                self.workflow_id, self.node_id, tab.type, port=tab.port_id,
            )
        except Exception as e:
            logger.debug(f"Node documents poll failed for {scope}: {e}")
            return
        if scope != self.scope:
            return
        self._replace(docs)


class OrphanedDocumentsPoller(DocumentListPoller):
    """Lists the workflow-wide orphaned documents."""

    name = "orphaned-documents"

    def start(self) -> None:
        self._reset()
        self._start_loop(self.workflow_id)

    async def tick(self) -> None:
        try:
            docs = await self._api.get_orphaned_documents(self.workflow_id)
        except Exception as e:
            logger.debug(f"Orphaned documents poll failed for {self.workflow_id}: {e}")
            return
        self._replace(docs)
