"""
Equivalence minimizer for canonical trees (used when comparing two trees).

Collapses shapes that differ structurally but mean the same thing: grouping
nodes around a single statement, all-text interpolated strings, and so on.
Handlers may rewrite a node to None; the parent keeps the slot as absent.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .tree import Node, Processor, node_type


def join_str_nodes(nodes: Sequence[Node]) -> str:
    return ''.join(node.children[0] for node in nodes)


def all_str(nodes: Sequence[Optional[Node]]) -> bool:
    return all(node_type(node) == 'str' for node in nodes)


class Minimizer(Processor):
    def on_begin(self, node: Node) -> Optional[Node]:
        node = self.process_regular_node(node)

        match len(node.children):
            case 0:
                return None
            case 1:
                return self.process(node.children[0])

        return node

    def on_kwbegin(self, node: Node) -> Optional[Node]:
        node = self.on_begin(node)
        if node is not None and node.type == 'kwbegin':
            return node.updated('begin')
        return node

    def on_dstr(self, node: Node) -> Node:
        node = self.process_regular_node(node)
        children = node.children

        if not children or all(child is None for child in children):
            return node.updated('str', [''])
        if all_str(children):
            return node.updated('str', [join_str_nodes(children)])
        return node

    def on_xstr(self, node: Node) -> Node:
        node = self.process_regular_node(node)
        children: List[Optional[Node]] = [
            child for child in node.children
            if not (node_type(child) == 'str' and child.children in ((), ('',)))
        ]

        if all_str(children):
            return node.updated(children=[Node('str', [join_str_nodes(children)])])
        return node.updated(children=children)

    def on_regexp(self, node: Node) -> Node:
        node = self.process_regular_node(node)
        *parts, options = node.children

        if len(parts) > 1 and all_str(parts):
            return node.updated(children=[Node('str', [join_str_nodes(parts)]), options])
        return node

    def on_str(self, node: Node) -> Node:
        return node
