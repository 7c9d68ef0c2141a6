"""Source-to-source instrumentation of one namespace.

The rewritten program runs the namespace body and, before each executed
statement, emits an artifact-creation notification carrying the
statement text and its line. Loop bodies are rewritten in place, so a
body line emits once per iteration, and each ``for`` iteration also
emits the loop target's current value against the ``for`` line.
"""

from __future__ import annotations

import tree_sitter

from cellsync.constants import (
    GENERATION_GLOBAL,
    NO_LINE,
    NOTIFY_ADDRESS_GLOBAL,
    ArtifactKind,
)
from cellsync.core.namespaces import surface_id_for, validate_namespace_name
from cellsync.extractor.regions import (
    find_definitions,
    is_module_region,
    parse,
)
from cellsync.resilience.errors import ConfigurationError

_EMIT = "_cs_emit"
_WRAPPER = "_cs_namespace"
_INDENT = "    "

_CLAUSE_TYPES = frozenset({
    "elif_clause",
    "else_clause",
    "except_clause",
    "except_group_clause",
    "finally_clause",
    "case_clause",
})
_COMPOUND_TYPES = frozenset({
    "for_statement",
    "while_statement",
    "if_statement",
    "with_statement",
    "try_statement",
    "match_statement",
})
_DEFAULT_PARAM_TYPES = ("default_parameter", "typed_default_parameter")
_STRING_PREFIX_CHARS = "rRbBuUfF"


class SourceSyntaxError(ValueError):
    """Source does not parse; nothing can be instrumented."""


def annotate(source: str, namespace: str) -> str:
    """Return *source* rewritten to notify while executing *namespace*."""
    validate_namespace_name(namespace)
    tree = parse(source)
    if tree.root_node.has_error:
        raise SourceSyntaxError("source has syntax errors")

    out = _Annotator(source)
    out.preamble(surface_id_for(namespace))

    if is_module_region(namespace):
        out.heading(namespace[1:-1], 1)
        out.block(tree.root_node, 0)
        return out.render()

    by_name = {d.name: d for d in find_definitions(tree.root_node)}
    definition = by_name.get(namespace)
    if definition is None:
        raise ConfigurationError(f"unknown namespace {namespace!r}")
    body = definition.node.child_by_field_name("body")
    if body is None:
        raise SourceSyntaxError(f"{namespace} has no body")

    out.heading(namespace, 2)
    if definition.is_function:
        # Wrapped so that ``return`` in the body stays legal
        out.write(0, [f"def {_WRAPPER}():"])
        out.defaults(definition.node, 1)
        out.block(body, 1)
        out.write(0, [f"{_WRAPPER}()"])
    else:
        out.block(body, 0)
    return out.render()


class _Annotator:
    def __init__(self, source: str) -> None:
        self._src = source.encode("utf-8")
        self._lines = source.split("\n")
        self._out: list[str] = []

    def render(self) -> str:
        return "\n".join(self._out) + "\n"

    # ── output primitives ─────────────────────────────────

    def write(self, level: int, lines: list[str]) -> None:
        pad = _INDENT * level
        self._out.extend(pad + line if line else line for line in lines)

    def emit(self, level: int, content: str, kind: str, line: int) -> None:
        self.write(level, [f"{_EMIT}({content!r}, {str(kind)!r}, {line})"])

    def preamble(self, surface_id: str) -> None:
        self.write(0, [
            "from cellsync.runtime.notifier import "
            "ArtifactNotifier as _CsNotifier",
            f"{_EMIT} = _CsNotifier.from_env({surface_id!r}, "
            f"generation=globals().get({GENERATION_GLOBAL!r}), "
            f"address=globals().get({NOTIFY_ADDRESS_GLOBAL!r})).emit",
        ])

    def heading(self, title: str, level: int) -> None:
        self.emit(0, title, f"{ArtifactKind.HEADING}{level}", NO_LINE)

    # ── source helpers ────────────────────────────────────

    def text(self, node: tree_sitter.Node) -> str:
        return self._src[node.start_byte:node.end_byte].decode("utf-8")

    def _indent_of(self, node: tree_sitter.Node) -> int:
        line = self._lines[node.start_point[0]]
        return len(line) - len(line.lstrip())

    def _dedent(self, text: str, node: tree_sitter.Node) -> list[str]:
        """Strip the statement's own indentation from continuation lines."""
        strip = self._indent_of(node)
        lines = text.split("\n")
        result = [lines[0]]
        for line in lines[1:]:
            if line[:strip].strip() == "" and len(line) >= strip:
                result.append(line[strip:])
            else:
                result.append(line)
        return result

    # ── statements ────────────────────────────────────────

    def block(self, block: tree_sitter.Node, level: int) -> None:
        executable = False
        for child in block.named_children:
            if child.type == "comment":
                note = self.text(child).lstrip("#").strip()
                if note:
                    self.emit(level, note, ArtifactKind.MARKDOWN, NO_LINE)
            elif _is_docstring(child):
                self.emit(
                    level,
                    _string_body(self.text(child)),
                    ArtifactKind.MARKDOWN,
                    child.start_point[0] + 1,
                )
            elif child.type in _COMPOUND_TYPES or child.type in _CLAUSE_TYPES:
                self.compound(child, level)
                executable = True
            else:
                self.simple(child, level)
                executable = True
        if not executable:
            self.write(level, ["pass"])

    def simple(self, node: tree_sitter.Node, level: int) -> None:
        lines = self._dedent(self.text(node), node)
        self.emit(level, "\n".join(lines), ArtifactKind.CODE,
                  node.start_point[0] + 1)
        self.write(level, lines)

    def compound(self, node: tree_sitter.Node, level: int) -> None:
        header_start = node.start_byte
        body = node.child_by_field_name("body")
        for child in node.children:
            if child.type == "block":
                header = self._src[header_start:child.start_byte]
                text = header.decode("utf-8").rstrip()
                self.write(level, self._dedent(text, node))
                if node.type == "for_statement" and child == body:
                    self._loop_target(node, level + 1)
                self.block(child, level + 1)
                header_start = child.end_byte
            elif child.type in _CLAUSE_TYPES:
                self.compound(child, level)

    def _loop_target(self, node: tree_sitter.Node, level: int) -> None:
        left = node.child_by_field_name("left")
        if left is None:
            return
        target = " ".join(self.text(left).split())
        expr = f"{target + ' = '!r} + repr(({target}))"
        self.write(
            level,
            [f"{_EMIT}({expr}, {ArtifactKind.CODE.value!r}, "
             f"{node.start_point[0] + 1})"],
        )

    def defaults(self, node: tree_sitter.Node, level: int) -> None:
        """Bind parameter defaults so the body can run standalone."""
        params = node.child_by_field_name("parameters")
        if params is None:
            return
        line = node.start_point[0] + 1
        for param in params.named_children:
            if param.type not in _DEFAULT_PARAM_TYPES:
                continue
            name = param.child_by_field_name("name")
            value = param.child_by_field_name("value")
            if name is None or value is None:
                continue
            stmt = f"{self.text(name)} = {' '.join(self.text(value).split())}"
            self.emit(level, stmt, ArtifactKind.CODE, line)
            self.write(level, [stmt])


def _is_docstring(node: tree_sitter.Node) -> bool:
    return (
        node.type == "expression_statement"
        and node.named_child_count == 1
        and node.named_children[0].type in ("string", "concatenated_string")
    )


def _string_body(raw: str) -> str:
    return raw.lstrip(_STRING_PREFIX_CHARS).strip("\"'").strip()
