"""Minimal nginx configuration model.

Contributors append directives to named blocks instead of concatenating
strings; render() turns the tree into text with fixed indentation, so the
same tree always renders to the same bytes.
"""

from dataclasses import dataclass, field
from typing import Union

INDENT = '  '


@dataclass
class Block:
    """A configuration context: `name { ... }`, or the file itself when name is empty."""
    name: str = ''
    children: list[Union[str, 'Block']] = field(default_factory=list)

    def add(self, *directives: str) -> 'Block':
        """Append simple directives (without the trailing semicolon)."""
        self.children.extend(directives)
        return self

    def block(self, name: str) -> 'Block':
        """Append and return a nested block."""
        child = Block(name)
        self.children.append(child)
        return child

    def find(self, name: str) -> 'Block':
        """Return the first direct child block called name."""
        for child in self.children:
            if isinstance(child, Block) and child.name == name:
                return child
        raise KeyError(name)

    def extend(self, children: list[Union[str, 'Block']]) -> None:
        self.children.extend(children)


def quote(value: str) -> str:
    """Double-quote a value for use as a directive argument."""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'"{escaped}"'


def render(block: Block, depth: int = 0) -> str:
    """Render block and its children to configuration text."""
    lines: list[str] = []
    _render_into(block, depth, lines)
    return '\n'.join(lines) + '\n'


def _render_into(block: Block, depth: int, lines: list[str]) -> None:
    if block.name:
        lines.append(f"{INDENT * depth}{block.name} {{")
        inner = depth + 1
    else:
        inner = depth

    for child in block.children:
        if isinstance(child, Block):
            _render_into(child, inner, lines)
        else:
            lines.append(f"{INDENT * inner}{child};")

    if block.name:
        lines.append(f"{INDENT * depth}}}")
