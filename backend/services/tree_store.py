"""
Copy-on-write operations on the decision tree.

Every mutation returns a new root. Nodes on the path from the root to the
changed node are newly allocated; every other subtree is shared by reference
with the input tree, which is never modified.
"""

import logging
import uuid
from typing import Any, Optional

from pydantic import ValidationError

from shared.schemas import NodeType, TreeNode

logger = logging.getLogger(__name__)

ROOT_ID = "root"

DEFAULT_LABELS = {
    NodeType.DECISION: "Decision",
    NodeType.CHANCE: "Chance event",
    NodeType.TERMINAL: "Outcome",
}
DEFAULT_PROBABILITY = 0.5


class InvalidTopologyError(ValueError):
    """Operation would break the tree shape (delete root, children under a terminal)."""


class InvalidNodeError(ValueError):
    """A node edit carries field values a TreeNode cannot hold (e.g. a null label)."""


def generate_id() -> str:
    return uuid.uuid4().hex[:9]


def _field_names(fields: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase aliases to attribute names; drop keys TreeNode does not know."""
    names: dict[str, Any] = {}
    for key, value in fields.items():
        if key in TreeNode.model_fields:
            names[key] = value
            continue
        for name, info in TreeNode.model_fields.items():
            if info.alias == key:
                names[name] = value
                break
        else:
            logger.debug("Ignoring unknown node field %r", key)
    return names


def find_node(root: TreeNode, node_id: str) -> Optional[TreeNode]:
    """Depth-first search; None when no node has this id."""
    if root.id == node_id:
        return root
    for child in root.children:
        found = find_node(child, node_id)
        if found is not None:
            return found
    return None


def _replace(root: TreeNode, node_id: str, fn) -> TreeNode:
    """Apply fn to the node with node_id, path-copying its ancestors."""
    if root.id == node_id:
        return fn(root)
    changed = False
    children = []
    for child in root.children:
        new_child = _replace(child, node_id, fn)
        changed = changed or new_child is not child
        children.append(new_child)
    if not changed:
        return root
    return root.model_copy(update={"children": children})


def update_node(root: TreeNode, node_id: str, fields: dict[str, Any]) -> TreeNode:
    """
    Shallow-merge fields into the node with node_id.

    Keys may be attribute names (calculated_value) or snapshot keys
    (calculatedValue). An unknown node_id returns root unchanged. The merged
    node is validated like any other TreeNode; values it cannot hold raise
    InvalidNodeError.
    """
    updates = _field_names(fields)
    updates.pop("id", None)
    new_children = updates.pop("children", None)
    if new_children is not None:
        try:
            new_children = [c if isinstance(c, TreeNode) else TreeNode.model_validate(c) for c in new_children]
        except ValidationError as e:
            raise InvalidNodeError(f"Invalid children: {e}") from e

    def merge(node: TreeNode) -> TreeNode:
        data = {name: getattr(node, name) for name in TreeNode.model_fields if name != "children"}
        data.update(updates)
        try:
            merged = TreeNode.model_validate(data)
        except ValidationError as e:
            raise InvalidNodeError(f"Invalid update for node '{node.id}': {e}") from e
        children = node.children if new_children is None else new_children
        if merged.type == NodeType.TERMINAL and children:
            raise InvalidTopologyError(f"Node '{node.id}' has children and cannot become a terminal node")
        # Existing child objects are kept as they are (shared, not re-validated)
        return merged.model_copy(update={"children": children})

    return _replace(root, node_id, merge)


def new_node(node_type: NodeType) -> TreeNode:
    node_type = NodeType(node_type)
    return TreeNode(
        id=generate_id(),
        type=node_type,
        label=DEFAULT_LABELS[node_type],
        value=0,
        probability=DEFAULT_PROBABILITY,
        children=[],
    )


def add_child(root: TreeNode, parent_id: str, node_type: NodeType) -> TreeNode:
    """Append a fresh node of node_type as the last child of parent_id."""
    child = new_node(node_type)

    def append(parent: TreeNode) -> TreeNode:
        if parent.type == NodeType.TERMINAL:
            raise InvalidTopologyError(f"Terminal node '{parent.id}' cannot have children")
        return parent.model_copy(update={"children": [*parent.children, child]})

    return _replace(root, parent_id, append)


def delete_node(root: TreeNode, node_id: str) -> TreeNode:
    """
    Remove every subtree whose root has node_id, wherever it occurs.

    The node passed as root is never removed: refusing a request to delete
    the root id is up to the caller.
    """
    changed = False
    children = []
    for child in root.children:
        if child.id == node_id:
            changed = True
            continue
        new_child = delete_node(child, node_id)
        changed = changed or new_child is not child
        children.append(new_child)
    if not changed:
        return root
    return root.model_copy(update={"children": children})


def iter_nodes(root: TreeNode):
    """Pre-order iteration over all nodes."""
    yield root
    for child in root.children:
        yield from iter_nodes(child)


def validate_structure(root: TreeNode) -> list[str]:
    """Check: ids unique across the tree, terminal nodes without children."""
    errors: list[str] = []
    seen: set[str] = set()
    for node in iter_nodes(root):
        if node.id in seen:
            errors.append(f"Duplicate node id '{node.id}'")
        seen.add(node.id)
        if node.type == NodeType.TERMINAL and node.children:
            errors.append(f"Terminal node '{node.id}' has children")
    return errors


def create_initial_tree() -> TreeNode:
    """Sample tree: production capacity expansion with three options."""

    def option(label: str, high: float, low: float) -> TreeNode:
        return TreeNode(
            id=generate_id(),
            type=NodeType.CHANCE,
            label=label,
            children=[
                TreeNode(id=generate_id(), type=NodeType.TERMINAL, label="Strong demand (60%)", value=high, probability=0.6),
                TreeNode(id=generate_id(), type=NodeType.TERMINAL, label="Weak demand (40%)", value=low, probability=0.4),
            ],
        )

    return TreeNode(
        id=ROOT_ID,
        type=NodeType.DECISION,
        label="Production capacity expansion",
        children=[
            option("Build automated plant", 2500, -500),
            option("Extend existing line", 1200, 300),
            option("Outsource production", 800, 500),
        ],
    )
