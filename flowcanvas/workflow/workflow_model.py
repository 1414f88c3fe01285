"""
Workflow Data Models — workflows, node instances, edges, and ports.

These are the structures the editor core holds in memory for one
workflow. They accept the remote API's wire shape (``position_x``,
``source_node_id``, ...) and expose canvas-friendly attributes.

Node configuration is a per-type record: ``NodeType`` is a closed
enumeration and ``CONFIG_MODELS`` maps every member to exactly one
config model.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, model_validator

DEFAULT_PORT = "default"


class NodeType(str, Enum):
    """Every node type a workflow can contain."""
    MANUAL_UPLOAD = "MANUAL_UPLOAD"
    WEBHOOK = "WEBHOOK"
    SPLITTING = "SPLITTING"
    CATEGORISATION = "CATEGORISATION"
    IF = "IF"
    SWITCH = "SWITCH"
    SET_VALUE = "SET_VALUE"
    EXTRACTOR = "EXTRACTOR"
    DATA_MAPPER = "DATA_MAPPER"
    RECONCILIATION = "RECONCILIATION"
    DOCUMENT_FOLDER = "DOCUMENT_FOLDER"
    HTTP = "HTTP"


class Position(BaseModel):
    """Canvas coordinates of a node's top-left corner."""

    x: float = 0
    y: float = 0


# ============================================================================
# Per-type configuration records
# ============================================================================


class NodeConfig(BaseModel):
    """Base for all node configs. Unknown keys are preserved."""

    model_config = ConfigDict(extra="allow")


class Condition(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str = ""
    type: str = "string"
    operator: str = "equals"
    value: Any = ""


class SwitchCase(Condition):
    """One branch of a SWITCH node. ``id`` doubles as the output port id."""

    id: str
    label: str = ""


class Assignment(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str = ""
    value: Any = ""


class ReconInputSlot(BaseModel):
    """A named input slot on a RECONCILIATION node."""

    model_config = ConfigDict(extra="allow")

    id: str
    extractor_id: str = ""
    label: str = ""


class TriggerConfig(NodeConfig):
    description: str = ""


class SplittingConfig(NodeConfig):
    splitting_instruction_id: Optional[str] = None


class CategorisationConfig(NodeConfig):
    categorisation_prompt_id: Optional[str] = None
    categorisation_labels: List[str] = Field(default_factory=list)


class IfConfig(NodeConfig):
    conditions: List[Condition] = Field(default_factory=list)
    logic: str = "AND"


class SwitchConfig(NodeConfig):
    cases: List[SwitchCase] = Field(default_factory=list)


class SetValueConfig(NodeConfig):
    assignments: List[Assignment] = Field(default_factory=list)


class ExtractorConfig(NodeConfig):
    extractor_id: Optional[str] = None


class DataMapperConfig(NodeConfig):
    data_map_rule_id: Optional[str] = None


class ReconciliationConfig(NodeConfig):
    recon_inputs: List[ReconInputSlot] = Field(default_factory=list)
    reconciliation_rule_id: Optional[str] = None


class DocumentFolderConfig(NodeConfig):
    folder_instance_id: Optional[str] = None


class HttpConfig(NodeConfig):
    url: str = ""
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None


CONFIG_MODELS: Dict[NodeType, Type[NodeConfig]] = {
    NodeType.MANUAL_UPLOAD: TriggerConfig,
    NodeType.WEBHOOK: TriggerConfig,
    NodeType.SPLITTING: SplittingConfig,
    NodeType.CATEGORISATION: CategorisationConfig,
    NodeType.IF: IfConfig,
    NodeType.SWITCH: SwitchConfig,
    NodeType.SET_VALUE: SetValueConfig,
    NodeType.EXTRACTOR: ExtractorConfig,
    NodeType.DATA_MAPPER: DataMapperConfig,
    NodeType.RECONCILIATION: ReconciliationConfig,
    NodeType.DOCUMENT_FOLDER: DocumentFolderConfig,
    NodeType.HTTP: HttpConfig,
}


def parse_node_config(node_type: NodeType, raw: Any) -> NodeConfig:
    """Validate a raw config object into the record for ``node_type``.

    The API may return the config column as a JSON string or ``null``.
    """
    model = CONFIG_MODELS[NodeType(node_type)]
    if isinstance(raw, NodeConfig):
        raw = raw.model_dump()
    elif isinstance(raw, str):
        raw = json.loads(raw) if raw.strip() else {}
    return model.model_validate(raw or {})


# ============================================================================
# Graph entities
# ============================================================================


class Workflow(BaseModel):
    """Workflow header: identity, display name, published flag."""

    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = "Untitled workflow"
    is_published: bool = False


class WorkflowNodeInstance(BaseModel):
    """A single node placed on the workflow canvas.

    Accepts the wire shape (``position_x`` / ``position_y``) and
    parses ``config`` into the record matching ``node_type``.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    node_type: NodeType
    name: str = ""
    position: Position = Field(default_factory=Position)
    config: SerializeAsAny[NodeConfig] = Field(default_factory=NodeConfig)

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "position" not in data and ("position_x" in data or "position_y" in data):
            data["position"] = {
                "x": data.pop("position_x", None) or 0,
                "y": data.pop("position_y", None) or 0,
            }
        node_type = data.get("node_type")
        if node_type is not None:
            data["config"] = parse_node_config(node_type, data.get("config"))
        return data

    def with_config(self, config: Any) -> "WorkflowNodeInstance":
        """Return a copy carrying a freshly parsed config."""
        return self.model_copy(
            update={"config": parse_node_config(self.node_type, config)}
        )


class WorkflowEdge(BaseModel):
    """A directed edge between an output port and an input port.

    Unnamed ports use the ``"default"`` port id.
    """

    model_config = ConfigDict(extra="ignore")

    id: str
    source: str  # source node instance ID
    target: str  # target node instance ID
    source_port: str = DEFAULT_PORT
    target_port: str = DEFAULT_PORT

    @model_validator(mode="before")
    @classmethod
    def _from_wire(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "source_node_id" in data:
            data.setdefault("source", data.pop("source_node_id"))
        if "target_node_id" in data:
            data.setdefault("target", data.pop("target_node_id"))
        for key in ("source_port", "target_port"):
            if not data.get(key):
                data[key] = DEFAULT_PORT
        return data

    def touches(self, node_id: str) -> bool:
        return self.source == node_id or self.target == node_id


# ============================================================================
# Ports
# ============================================================================


class Port(BaseModel):
    """A named attachment point on a node. Derived, never stored."""

    model_config = ConfigDict(frozen=True)

    id: str
    label: str


class NodePorts(BaseModel):
    """Ordered input and output ports of one node."""

    model_config = ConfigDict(frozen=True)

    inputs: List[Port]
    outputs: List[Port]

    @property
    def input_ids(self) -> List[str]:
        return [p.id for p in self.inputs]

    @property
    def output_ids(self) -> List[str]:
        return [p.id for p in self.outputs]

    @property
    def default_input(self) -> str:
        return self.inputs[0].id if self.inputs else DEFAULT_PORT

    @property
    def default_output(self) -> str:
        return self.outputs[0].id if self.outputs else DEFAULT_PORT
