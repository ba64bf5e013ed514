"""
Tree layout: node coordinates and connector anchors for a renderer.

Horizontal position is depth × HORIZONTAL_SPACING. Leaves take successive
vertical slots (VERTICAL_SPACING apart) in left-to-right depth-first order;
an internal node sits halfway between its first and last child. Layout
depends on the tree shape only, never on values.
"""

from typing import Optional

from pydantic import BaseModel, Field

from shared.schemas import NodeType, TreeNode

NODE_WIDTH = 180
NODE_HEIGHT = 60
HORIZONTAL_SPACING = 280
VERTICAL_SPACING = 100
# Connector ends sit this far right of the parent and left of the child
CONNECTOR_OFFSET = 20


class Point(BaseModel):
    x: float
    y: float


class LayoutNode(BaseModel):
    """A tree node with its coordinates; mirrors the tree shape."""

    node: TreeNode
    x: float
    y: float
    depth: int
    children: list["LayoutNode"] = Field(default_factory=list)


class PositionedNode(BaseModel):
    id: str
    label: str
    type: NodeType
    x: float
    y: float
    depth: int
    calculated_value: Optional[float] = None
    is_optimal: Optional[bool] = None


class Connector(BaseModel):
    """Edge between a parent and a child, with anchors for drawing and labelling."""

    source_id: str
    target_id: str
    start: Point
    end: Point
    label_anchor: Point
    probability: Optional[float] = Field(None, description="Branch probability when the parent is a chance node")
    optimal: bool = False


class TreeLayout(BaseModel):
    nodes: list[PositionedNode] = Field(default_factory=list)
    connectors: list[Connector] = Field(default_factory=list)
    width: float = 0
    height: float = 0


def layout_tree(root: TreeNode) -> LayoutNode:
    """Assign (x, y) to every node."""
    next_y = 0.0

    def place(node: TreeNode, depth: int) -> LayoutNode:
        nonlocal next_y
        x = depth * HORIZONTAL_SPACING
        if not node.children:
            leaf = LayoutNode(node=node, x=x, y=next_y, depth=depth)
            next_y += VERTICAL_SPACING
            return leaf
        children = [place(child, depth + 1) for child in node.children]
        y = (children[0].y + children[-1].y) / 2
        return LayoutNode(node=node, x=x, y=y, depth=depth, children=children)

    return place(root, 0)


def connector(parent: LayoutNode, child: LayoutNode) -> Connector:
    start = Point(x=parent.x + CONNECTOR_OFFSET, y=parent.y)
    end = Point(x=child.x - CONNECTOR_OFFSET, y=child.y)
    return Connector(
        source_id=parent.node.id,
        target_id=child.node.id,
        start=start,
        end=end,
        label_anchor=Point(x=(start.x + end.x) / 2, y=(start.y + end.y) / 2),
        probability=child.node.probability if parent.node.type == NodeType.CHANCE else None,
        optimal=bool(child.node.is_optimal) and parent.node.is_optimal is not False,
    )


def compute_layout(root: TreeNode) -> TreeLayout:
    """Flatten layout_tree() into positioned nodes, connectors and a bounding box."""
    layout = TreeLayout()
    stack = [layout_tree(root)]
    while stack:
        item = stack.pop()
        layout.nodes.append(
            PositionedNode(
                id=item.node.id,
                label=item.node.label,
                type=item.node.type,
                x=item.x,
                y=item.y,
                depth=item.depth,
                calculated_value=item.node.calculated_value,
                is_optimal=item.node.is_optimal,
            )
        )
        for child in item.children:
            layout.connectors.append(connector(item, child))
        stack.extend(reversed(item.children))
    layout.width = max(n.x for n in layout.nodes) + NODE_WIDTH
    layout.height = max(n.y for n in layout.nodes) + NODE_HEIGHT
    return layout
