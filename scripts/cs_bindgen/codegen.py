"""
Code generation utilities

Provides helpers for generating C# code.
"""

import re
from typing import Optional


class CodeGen:
    """Code generation helper with indentation support"""

    def __init__(self, indent: int = 0):
        self._lines: list[str] = []
        self._indent: int = indent
        self._indent_str: str = '    '  # 4 spaces

    def line(self, text: str = ''):
        """Add a line with current indentation"""
        if text:
            self._lines.append(self._indent_str * self._indent + text)
        else:
            self._lines.append('')

    def lines(self, *texts: str):
        """Add multiple lines"""
        for text in texts:
            self.line(text)

    def indent(self):
        """Increase indentation"""
        self._indent += 1

    def dedent(self):
        """Decrease indentation"""
        if self._indent > 0:
            self._indent -= 1

    def block(self, header: str, footer: str = '}'):
        """Context manager for a braced block, brace on its own line"""
        return _BlockContext(self, header, footer)

    def trim_blank(self):
        """Remove trailing blank lines"""
        while self._lines and not self._lines[-1]:
            self._lines.pop()

    def extend(self, other: 'CodeGen'):
        """Append the lines of another generator"""
        self._lines.extend(other._lines)

    def output(self) -> str:
        """Get generated code as string"""
        return '\n'.join(self._lines) + '\n'


class _BlockContext:
    """Context manager for indented code blocks"""

    def __init__(self, gen: CodeGen, header: str, footer: str):
        self._gen = gen
        self._header = header
        self._footer = footer

    def __enter__(self):
        self._gen.line(self._header)
        self._gen.line('{')
        self._gen.indent()
        return self

    def __exit__(self, *args):
        self._gen.dedent()
        self._gen.trim_blank()
        self._gen.line(self._footer)


# C# reserved keywords
CS_KEYWORDS = {
    'abstract', 'as', 'base', 'bool', 'break', 'byte', 'case', 'catch', 'char',
    'checked', 'class', 'const', 'continue', 'decimal', 'default', 'delegate',
    'do', 'double', 'else', 'enum', 'event', 'explicit', 'extern', 'false',
    'finally', 'fixed', 'float', 'for', 'foreach', 'goto', 'if', 'implicit',
    'in', 'int', 'interface', 'internal', 'is', 'lock', 'long', 'namespace',
    'new', 'null', 'object', 'operator', 'out', 'override', 'params', 'private',
    'protected', 'public', 'readonly', 'ref', 'return', 'sbyte', 'sealed',
    'short', 'sizeof', 'stackalloc', 'static', 'string', 'struct', 'switch',
    'this', 'throw', 'true', 'try', 'typeof', 'uint', 'ulong', 'unchecked',
    'unsafe', 'ushort', 'using', 'virtual', 'void', 'volatile', 'while',
}

_IDENT_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def is_identifier(name: str) -> bool:
    """Check if name is usable as a C# identifier (after keyword escaping)"""
    return _IDENT_RE.match(name) is not None


def escape_ident(name: str) -> str:
    """Escape C# keywords with '@'

    Examples:
        class -> @class
        value -> value
    """
    return f'@{name}' if name in CS_KEYWORDS else name


def as_pascal_case(name: str) -> str:
    """Convert snake_case (or kebab-case) name to PascalCase

    Examples:
        greet -> Greet
        get_name_length -> GetNameLength
        integration-tests -> IntegrationTests
        HTTPServer -> HTTPServer
    """
    parts = [p for p in re.split(r'[^A-Za-z0-9]+', name) if p]
    return ''.join(p[0].upper() + p[1:] for p in parts) or name


def as_camel_case(name: str) -> str:
    """Convert snake_case name to camelCase, escaping keywords

    Examples:
        first_name -> firstName
        num -> num
        class -> @class
    """
    pascal = as_pascal_case(name)
    return escape_ident(pascal[0].lower() + pascal[1:])


def field_ident(name, index: int) -> str:
    """C# field name for a named or positional field

    Examples:
        (x_pos, 0) -> XPos
        (None, 1) -> Element1
    """
    if name is None:
        return f'Element{index}'
    return as_pascal_case(name)


def arg_ident(name, index: int) -> str:
    """C# constructor parameter name for a named or positional field"""
    if name is None:
        return f'element{index}'
    return as_camel_case(name)


def gen_conversions(gen: CodeGen, raw_type: str, cs_type: str,
                    from_raw: list[str], into_raw: Optional[list[str]]):
    """Generate the __FromRaw/__IntoRaw overload pair for one type

    `from_raw` reads `raw` and assigns `result`; `into_raw` reads `value`
    and assigns `result`. Return-only types pass None for `into_raw`.
    """
    with gen.block(f'internal static void __FromRaw({raw_type} raw, out {cs_type} result)'):
        gen.lines(*from_raw)
    gen.line()
    if into_raw is not None:
        with gen.block(f'internal static void __IntoRaw({cs_type} value, out {raw_type} result)'):
            gen.lines(*into_raw)
        gen.line()


def string_literal(text: str) -> str:
    """Quote text as a C# string literal"""
    return '"' + text.replace('\\', '\\\\').replace('"', '\\"') + '"'
