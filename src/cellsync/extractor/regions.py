"""Extract named regions (namespaces) from Python source via tree-sitter."""

from __future__ import annotations

import importlib
from dataclasses import dataclass

import tree_sitter

from cellsync.constants import REGION_PATH_SEPARATOR, UNBOUNDED
from cellsync.core.namespaces import validate_namespace_name

_GRAMMAR_MODULE = "tree_sitter_python"

_DEFINITION_TYPES = ("function_definition", "class_definition")


@dataclass(frozen=True)
class Definition:
    """A function or class together with its qualified region name."""

    name: str
    node: tree_sitter.Node
    outer: tree_sitter.Node  # decorated_definition wrapper, or node itself

    @property
    def start_line(self) -> int:
        return self.outer.start_point[0] + 1

    @property
    def end_line(self) -> int:
        return self.outer.end_point[0] + 1

    @property
    def is_function(self) -> bool:
        return self.node.type == "function_definition"


def module_region_name(root_name: str) -> str:
    return f"*{root_name}*"


def is_module_region(name: str) -> bool:
    return len(name) > 2 and name.startswith("*") and name.endswith("*")


def parse(source: str) -> tree_sitter.Tree:
    parser = _get_parser()
    return parser.parse(source.encode("utf-8"))


def find_definitions(root: tree_sitter.Node) -> list[Definition]:
    """Every def/class in source order, nested names joined by ``/``."""
    found: list[Definition] = []
    seen: dict[str, int] = {}
    _walk(root, None, found, seen)
    return found


def extract_regions(
    source: str, root_name: str
) -> list[tuple[str, int, int]]:
    """Module region first, then one region per definition."""
    validate_namespace_name(root_name)
    tree = parse(source)
    regions: list[tuple[str, int, int]] = [
        (module_region_name(root_name), UNBOUNDED, UNBOUNDED)
    ]
    for d in find_definitions(tree.root_node):
        regions.append((d.name, d.start_line, d.end_line))
    return regions


def _walk(
    node: tree_sitter.Node,
    parent: str | None,
    found: list[Definition],
    seen: dict[str, int],
) -> None:
    for child in node.named_children:
        target = child
        if child.type == "decorated_definition":
            inner = child.child_by_field_name("definition")
            if inner is not None:
                target = inner

        if target.type not in _DEFINITION_TYPES:
            _walk(child, parent, found, seen)
            continue

        name = _get_name(target)
        if name is None:
            continue
        qualified = (
            f"{parent}{REGION_PATH_SEPARATOR}{name}" if parent else name
        )
        # Redefinitions at the same level get a numeric suffix
        count = seen.get(qualified, 0) + 1
        seen[qualified] = count
        if count > 1:
            qualified = f"{qualified}#{count}"

        found.append(Definition(name=qualified, node=target, outer=child))
        body = target.child_by_field_name("body")
        if body is not None:
            _walk(body, qualified, found, seen)


def _get_name(node: tree_sitter.Node) -> str | None:
    """Extract the identifier name from a declaration node."""
    ident = node.child_by_field_name("name")
    if ident is None or ident.text is None:
        return None
    return ident.text.decode("utf-8")


# ---------------------------------------------------------------------------
# Parser cache
# ---------------------------------------------------------------------------

_parser_cache: dict[str, tree_sitter.Parser] = {}


def _get_parser() -> tree_sitter.Parser:
    """Get or create the cached tree-sitter Python parser."""
    parser = _parser_cache.get(_GRAMMAR_MODULE)
    if parser is not None:
        return parser

    mod = importlib.import_module(_GRAMMAR_MODULE)
    capsule: object = mod.language()
    lang = tree_sitter.Language(capsule)
    parser = tree_sitter.Parser(lang)
    _parser_cache[_GRAMMAR_MODULE] = parser
    return parser
