# ============================================================================
# WORKFLOW DEFINITION MODEL
# ============================================================================
# EPOCH: 1 - WORKFLOW AUTOMATION
# STATUS: Core model - Workflow graph (nodes + edges)
# PURPOSE: Typed node union, edges, and structural validation
# LAST_REVIEWED: 14 SEP 2026
# EXPORTS: WorkflowDefinition, Node, Edge, TriggerNode, ActionNode,
#          ConditionNode, DelayNode, WaitForInputNode, UnknownNode, WorkflowGraph
# DEPENDENCIES: pydantic
# ============================================================================
"""
Workflow Definition Models

A WorkflowDefinition is the blueprint an instance executes. It holds:
- Matching metadata (trigger type, segment, tenant, optional form filter)
- Nodes: a closed union discriminated by `kind`
- Edges: directed, optionally labelled ("true"/"false" after a condition)

Definitions are authored in an external graph editor which stores nodes as
`{"id", "type", "data": {camelCaseFields}}`. The model accepts both that
shape and the flat snake_case shape used in YAML files, so storage rows can
be validated directly.

Definitions are immutable while instances execute against them.
"""

from collections import OrderedDict
from typing import Annotated, Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.contracts import (
    ActionType,
    DelayMode,
    NodeKind,
    OnPastPolicy,
    PatientSegment,
    TimeUnit,
    TimingDirection,
)


# ============================================================================
# NODES
# ============================================================================

class NodeBase(BaseModel):
    """Fields shared by every node kind."""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., max_length=64)
    label: Optional[str] = Field(default=None, description="Display name from the editor")


class TriggerNode(NodeBase):
    """
    Entry point. Pass-through at execution time.

    BEFORE/AFTER timing turns the definition into a secondary trigger which the
    scheduler starts relative to appointment dates.
    """
    kind: Literal["trigger"] = "trigger"
    timing_direction: TimingDirection = TimingDirection.IMMEDIATE
    timing_value: int = Field(default=0, ge=0)
    timing_unit: TimeUnit = TimeUnit.HOURS

    @property
    def is_secondary(self) -> bool:
        return (
            self.timing_direction in (TimingDirection.BEFORE, TimingDirection.AFTER)
            and self.timing_value > 0
        )

    @property
    def timing_label(self) -> str:
        return f"{self.timing_direction.value}_{self.timing_value}_{self.timing_unit.value}"


class ActionNode(NodeBase):
    """Performs one side effect: a message or an appointment mutation."""
    kind: Literal["action"] = "action"
    action_type: ActionType
    message: Optional[str] = Field(default=None, description="Inline body template")
    subject: Optional[str] = Field(default=None, description="Inline subject template (email)")
    template_id: Optional[str] = None
    reason: Optional[str] = Field(default=None, description="Waitlist reason")


class ConditionNode(NodeBase):
    """Routes along the edge labelled 'true' or 'false'."""
    kind: Literal["condition"] = "condition"
    variable: str
    operator: str = Field(..., description="Operator name or symbolic alias")
    value: Any = None


class DelayNode(NodeBase):
    """Suspends the instance until a computed wake instant."""
    kind: Literal["delay"] = "delay"
    delay_mode: DelayMode = DelayMode.FIXED
    delay_value: int = Field(default=0)
    delay_unit: TimeUnit = TimeUnit.MINUTES
    on_past: OnPastPolicy = OnPastPolicy.RUN

    @field_validator("delay_value", mode="before")
    @classmethod
    def parse_delay_value(cls, v):
        """Editor stores the magnitude as a string; blanks mean zero."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return 0
        return int(v)


class WaitForInputNode(NodeBase):
    """Suspends until a patient reply matches one of the branch keywords."""
    kind: Literal["wait_for_input"] = "wait_for_input"
    branches: Dict[str, str] = Field(
        default_factory=dict,
        description="Keyword -> target node id, matched in insertion order"
    )
    input_channel: Optional[str] = Field(
        default=None,
        description="Restrict matching to replies on this channel (SMS, WHATSAPP, EMAIL)"
    )

    @field_validator("branches", mode="before")
    @classmethod
    def normalize_keys(cls, v):
        """Keys are matched against trimmed, lower-cased replies."""
        if not v:
            return {}
        return OrderedDict((str(k).strip().lower(), target) for k, target in v.items())


class UnknownNode(NodeBase):
    """Any editor node type the engine has no executor for."""
    kind: Literal["unknown"] = "unknown"
    declared_type: Optional[str] = None


Node = Annotated[
    Union[TriggerNode, ActionNode, ConditionNode, DelayNode, WaitForInputNode, UnknownNode],
    Field(discriminator="kind"),
]


# Editor camelCase -> model field
_EDITOR_FIELD_MAP = {
    "timingDirection": "timing_direction",
    "timeCondition": "timing_direction",
    "timingValue": "timing_value",
    "timingUnit": "timing_unit",
    "actionType": "action_type",
    "templateId": "template_id",
    "delayMode": "delay_mode",
    "delayValue": "delay_value",
    "delayUnit": "delay_unit",
    "onPast": "on_past",
    "inputType": "input_channel",
    "inputChannel": "input_channel",
}

_KNOWN_KINDS = {kind.value for kind in NodeKind if kind != NodeKind.UNKNOWN}


def normalize_node(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten an editor-shaped node into the model's field layout.

    Unknown types become kind='unknown' with the original type preserved.
    """
    if not isinstance(raw, dict) or "kind" in raw:
        return raw

    node: Dict[str, Any] = {k: v for k, v in raw.items() if k not in ("type", "data", "position")}
    data = raw.get("data") or {}
    for key, value in data.items():
        field_name = _EDITOR_FIELD_MAP.get(key, key)
        if value is None or value == "":
            continue
        node.setdefault(field_name, value)

    declared = str(raw.get("type", "")).strip().lower()
    if declared in _KNOWN_KINDS:
        node["kind"] = declared
    else:
        node["kind"] = NodeKind.UNKNOWN.value
        node["declared_type"] = raw.get("type")

    # Legacy timeCondition strings ("BEFORE_24H") carry no magnitude
    direction = node.get("timing_direction")
    if isinstance(direction, str) and direction not in TimingDirection.__members__:
        node["timing_direction"] = TimingDirection.IMMEDIATE.value

    return node


# ============================================================================
# EDGES
# ============================================================================

class Edge(BaseModel):
    """
    Directed edge between two nodes.

    The branch name after a condition ("true"/"false") lives in
    `source_handle` (editor `sourceHandle`) or `label`. Editor edges often
    carry both, with `label` holding display text, so a branch matches
    either one.
    """
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: Optional[str] = None
    source: str
    target: str
    source_handle: Optional[str] = Field(default=None, alias="sourceHandle")
    label: Optional[str] = None

    def matches(self, branch_label: Optional[str]) -> bool:
        if branch_label is None:
            return True
        wanted = branch_label.lower()
        return any(
            value is not None and value.lower() == wanted
            for value in (self.source_handle, self.label)
        )


class WorkflowGraph:
    """Adjacency view of a definition: source node id -> outgoing edges in list order."""

    def __init__(self, nodes: List[NodeBase], edges: List[Edge]):
        self._nodes: Dict[str, NodeBase] = {node.id: node for node in nodes}
        self._outgoing: Dict[str, List[Edge]] = {}
        for edge in edges:
            self._outgoing.setdefault(edge.source, []).append(edge)

    def node(self, node_id: str) -> Optional[NodeBase]:
        return self._nodes.get(node_id)

    def outgoing(self, node_id: str, branch_label: Optional[str] = None) -> List[Edge]:
        return [e for e in self._outgoing.get(node_id, []) if e.matches(branch_label)]


# ============================================================================
# DEFINITION
# ============================================================================

class WorkflowDefinition(BaseModel):
    """
    Complete workflow definition.

    Maps to: workflow.workflow_definitions table
    """

    # =========================================================================
    # SQL DDL METADATA (Used by PydanticToSQL generator)
    # =========================================================================
    __sql_table__: ClassVar[str] = "workflow_definitions"
    __sql_schema__: ClassVar[str] = "workflow"
    __sql_primary_key__: ClassVar[List[str]] = ["workflow_id"]
    __sql_indexes__: ClassVar[List[tuple]] = [
        ("idx_wf_defs_match", ["trigger_type", "tenant_id", "is_active"]),
    ]

    model_config = ConfigDict(extra="ignore")

    workflow_id: str = Field(..., max_length=64)
    name: str = Field(..., max_length=200)
    tenant_id: str = Field(..., max_length=64, description="Clinic that owns this definition")
    trigger_type: str = Field(..., max_length=64, description="Event type that starts this workflow")
    patient_segment: PatientSegment = Field(default=PatientSegment.ALL)
    form_id: Optional[str] = Field(default=None, max_length=64)
    trigger_value: Optional[str] = Field(
        default=None,
        max_length=200,
        description="Tracking filter: template id for opens, action name for clicks"
    )
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    is_active: bool = True
    description: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def accept_editor_shape(cls, data):
        """Accept camelCase storage rows (patientType, triggerType, uiData)."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        aliases = {
            "id": "workflow_id",
            "triggerType": "trigger_type",
            "patientType": "patient_segment",
            "formId": "form_id",
            "isActive": "is_active",
            "clinicId": "tenant_id",
        }
        for camel, snake in aliases.items():
            if camel in data and snake not in data:
                data[snake] = data.pop(camel)
        ui_data = data.pop("uiData", None) or {}
        if "trigger_value" not in data and ui_data.get("triggerValue"):
            data["trigger_value"] = ui_data["triggerValue"]
        if isinstance(data.get("nodes"), list):
            data["nodes"] = [normalize_node(n) for n in data["nodes"]]
        return data

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    def get_trigger_node(self) -> TriggerNode:
        """Find the Trigger node."""
        for node in self.nodes:
            if isinstance(node, TriggerNode):
                return node
        raise ValueError(f"Workflow {self.workflow_id} has no trigger node")

    def get_node(self, node_id: str) -> NodeBase:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        raise KeyError(f"Node '{node_id}' not found in workflow '{self.workflow_id}'")

    def graph(self) -> WorkflowGraph:
        return WorkflowGraph(self.nodes, self.edges)

    def validate_structure(self) -> List[str]:
        """
        Validate workflow structure.

        Returns list of validation errors (empty if valid).
        """
        errors = []
        node_ids = [n.id for n in self.nodes]
        known = set(node_ids)

        triggers = [n.id for n in self.nodes if isinstance(n, TriggerNode)]
        if not triggers:
            errors.append("Workflow must have a trigger node")
        elif len(triggers) > 1:
            errors.append(f"Workflow has multiple trigger nodes: {triggers}")

        if len(known) != len(node_ids):
            dupes = sorted({n for n in node_ids if node_ids.count(n) > 1})
            errors.append(f"Duplicate node ids: {dupes}")

        for edge in self.edges:
            if edge.source not in known:
                errors.append(f"Edge source '{edge.source}' is not a node")
            if edge.target not in known:
                errors.append(f"Edge target '{edge.target}' is not a node")

        for node in self.nodes:
            if isinstance(node, WaitForInputNode):
                for keyword, target in node.branches.items():
                    if target not in known:
                        errors.append(
                            f"wait_for_input node '{node.id}' branch '{keyword}' "
                            f"references unknown node '{target}'"
                        )

        return errors


__all__ = [
    "NodeBase",
    "TriggerNode",
    "ActionNode",
    "ConditionNode",
    "DelayNode",
    "WaitForInputNode",
    "UnknownNode",
    "Node",
    "normalize_node",
    "Edge",
    "WorkflowGraph",
    "WorkflowDefinition",
]
