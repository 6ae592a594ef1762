"""
Output format templates.

A closed subset of Go's text/template, enough to lay out derivation
results:

    {{ printf "%s:%s" (b64enc .Salt) (b64enc .Key) }}
    {{- b64enc (printf "%s%s%s" (bin 4 .Iterations) .Salt .Key) -}}
    {{ .Key | b64enc }}

Fields are `.Iterations`, `.Salt` and `.Key`; the only functions are
`printf`, `bin` and `b64enc`. Anything else is rejected while parsing.
"""

from __future__ import annotations
import base64
import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Union

from .errors import TemplateExecError, TemplateSyntaxError

logger = logging.getLogger(__name__)


TEMPLATE_NAME = "format"

Value = Union[int, str, bytes, "FormatContext"]


@dataclass(frozen=True)
class FormatContext:
    iterations: int
    salt: bytes = field(repr=False)
    key: bytes = field(repr=False)


# Template field name -> FormatContext attribute.
FIELDS = {
    "Iterations": "iterations",
    "Salt": "salt",
    "Key": "key",
}


def _to_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8", "surrogateescape")
    return bytes(value)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _describe(value) -> str:
    # Type and size only; values may be secret.
    if isinstance(value, FormatContext):
        return "context"
    if isinstance(value, (bytes, bytearray)):
        return f"bytes[{len(value)}]"
    if isinstance(value, str):
        return "string"
    if _is_int(value):
        return "int"
    return type(value).__name__


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def bin(length: int, value: int) -> bytes:
    """Low-order `length` bytes of `value` packed as a big-endian uint64."""
    if not _is_int(length) or not _is_int(value):
        raise TypeError(f"expected (int, int), got ({_describe(length)}, {_describe(value)})")
    if not 0 <= length <= 8:
        raise ValueError(f"length {length} out of range 0..8")
    packed = (value & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "big")
    return packed[8 - length:]


def b64enc(data: Union[bytes, str]) -> str:
    """Standard padded base64."""
    if not isinstance(data, (bytes, bytearray, str)):
        raise TypeError(f"expected bytes, got {_describe(data)}")
    return base64.b64encode(_to_bytes(data)).decode("ascii")


_VERB_RE = re.compile(r"%([-+0# ]*)([0-9]*)(.?)", re.S)


_QUOTE_ESCAPES = {
    '"': '\\"', "\\": "\\\\", "\a": "\\a", "\b": "\\b", "\f": "\\f",
    "\n": "\\n", "\r": "\\r", "\t": "\\t", "\v": "\\v",
}


def _quote(data: bytes) -> bytes:
    """Double-quoted literal like Go's strconv.Quote; printable UTF-8 stays as is."""
    out = ['"']
    for ch in data.decode("utf-8", "surrogateescape"):
        code = ord(ch)
        if ch in _QUOTE_ESCAPES:
            out.append(_QUOTE_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            # Byte that was not part of valid UTF-8.
            out.append("\\x%02x" % (code - 0xDC00))
        elif ch.isprintable():
            out.append(ch)
        elif code < 0x80:
            out.append("\\x%02x" % code)
        elif code < 0x10000:
            out.append("\\u%04x" % code)
        else:
            out.append("\\U%08x" % code)
    out.append('"')
    return "".join(out).encode("utf-8", "surrogatepass")


def _format_verb(verb: str, flags: str, arg) -> bytes:
    if isinstance(arg, FormatContext):
        raise TypeError(f"%{verb} cannot format the context itself")
    if verb in ("s", "v"):
        return str(arg).encode("ascii") if _is_int(arg) else _to_bytes(arg)
    if verb == "d":
        if not _is_int(arg):
            raise TypeError(f"%d needs an int, got {_describe(arg)}")
        return ("+" if "+" in flags and arg >= 0 else "").encode() + str(arg).encode()
    if verb in ("x", "X"):
        if _is_int(arg):
            text = format(arg, "x")
            if "#" in flags:
                text = text.replace("-", "-0x") if arg < 0 else "0x" + text
        else:
            text = _to_bytes(arg).hex()
        return (text.upper() if verb == "X" else text).encode("ascii")
    if verb == "q":
        if _is_int(arg):
            raise TypeError(f"%q needs a string, got {_describe(arg)}")
        return _quote(_to_bytes(arg))
    raise ValueError(f"unsupported verb %{verb}")


def printf(fmt: str, *args) -> str:
    """Go-style printf for the verbs %s %v %d %x %X %q and %%."""
    if not isinstance(fmt, str):
        raise TypeError(f"format must be a string, got {_describe(fmt)}")
    out = bytearray()
    pending = list(args)
    pos = 0
    for m in _VERB_RE.finditer(fmt):
        out += _to_bytes(fmt[pos:m.start()])
        pos = m.end()
        flags, width, verb = m.groups()
        if verb == "%":
            out += b"%"
            continue
        if not verb:
            raise ValueError("format ends with a bare %")
        if not pending:
            raise ValueError(f"missing argument for %{verb}")
        text = _format_verb(verb, flags, pending.pop(0))
        if width and len(text) < int(width):
            pad = int(width) - len(text)
            if "-" in flags:
                text = text + b" " * pad
            elif "0" in flags and verb in ("d", "x", "X") and text[:1] in (b"-", b"+"):
                text = text[:1] + b"0" * pad + text[1:]
            elif "0" in flags and verb in ("d", "x", "X"):
                text = b"0" * pad + text
            else:
                text = b" " * pad + text
        out += text
    out += _to_bytes(fmt[pos:])
    if pending:
        raise ValueError(f"{len(pending)} extra argument(s) for format")
    return bytes(out).decode("utf-8", "surrogateescape")


# name -> (callable, fixed arity or None for variadic with one required arg)
FUNCS = {
    "printf": (printf, None),
    "bin": (bin, 2),
    "b64enc": (b64enc, 1),
}


# ---------------------------------------------------------------------------
# Parse tree
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Text:
    data: str


@dataclass(frozen=True)
class Field:
    names: tuple


@dataclass(frozen=True)
class Dot:
    pass


@dataclass(frozen=True)
class Literal:
    value: Union[int, str]


@dataclass(frozen=True)
class Func:
    name: str


@dataclass(frozen=True)
class Command:
    args: tuple
    source: str


@dataclass(frozen=True)
class Pipeline:
    commands: tuple


@dataclass(frozen=True)
class Action:
    pipeline: Pipeline
    line: int


@dataclass(frozen=True)
class Template:
    source: str = field(repr=False)
    nodes: tuple = ()

    def execute(self, ctx: FormatContext) -> bytes:
        out = bytearray()
        for node in self.nodes:
            if isinstance(node, Text):
                out += _to_bytes(node.data)
            else:
                out += _Exec(ctx, node.line).emit(node.pipeline)
        return bytes(out)


# ---------------------------------------------------------------------------
# Lexer / parser
# ---------------------------------------------------------------------------

_WS = " \t\r\n"
_TOKEN_RE = re.compile(
    r"""
      (?P<string>"(?:[^"\\\n]|\\.)*")
    | (?P<raw>`[^`]*`)
    | (?P<number>-?(?:0[xX][0-9a-fA-F_]+|0[oO][0-7_]+|0[bB][01_]+|[0-9][0-9_]*))(?![\w.])
    | (?P<field>(?:\.[A-Za-z_]\w*)+)
    | (?P<dot>\.)(?![\w.])
    | (?P<ident>[A-Za-z_]\w*)
    | (?P<punct>[()|])
    """,
    re.X,
)
_ESCAPE_RE = re.compile(
    r"\\(?:x([0-9a-fA-F]{2})|u([0-9a-fA-F]{4})|U([0-9a-fA-F]{8})|([0-7]{3})|(.))", re.S
)
_SIMPLE_ESCAPES = {
    "n": b"\n", "t": b"\t", "r": b"\r", "a": b"\a", "b": b"\b",
    "f": b"\f", "v": b"\v", "\\": b"\\", '"': b'"', "'": b"'",
}
_KEYWORDS = {"if", "else", "end", "range", "with", "define", "template", "block",
             "break", "continue", "nil", "true", "false"}


def _unquote(body: str) -> str:
    out = bytearray()
    pos = 0
    for m in _ESCAPE_RE.finditer(body):
        out += body[pos:m.start()].encode("utf-8", "surrogateescape")
        pos = m.end()
        hex2, u4, u8, octal, simple = m.groups()
        if hex2:
            out.append(int(hex2, 16))
        elif u4 or u8:
            out += chr(int(u4 or u8, 16)).encode("utf-8", "surrogatepass")
        elif octal:
            if int(octal, 8) > 255:
                raise ValueError(f"octal escape \\{octal} out of range")
            out.append(int(octal, 8))
        elif simple in _SIMPLE_ESCAPES:
            out += _SIMPLE_ESCAPES[simple]
        else:
            raise ValueError(f"unknown escape sequence \\{simple}")
    out += body[pos:].encode("utf-8", "surrogateescape")
    return bytes(out).decode("utf-8", "surrogateescape")


def _parse_int(text: str) -> int:
    digits = text.lstrip("-")
    if len(digits) > 1 and digits[0] == "0" and digits[1].isdigit():
        value = int(digits, 8)
        return -value if text.startswith("-") else value
    return int(text, 0)


class _Parser:
    def __init__(self, source: str):
        self.source = source
        self.pos = 0

    def error(self, msg: str, pos: Optional[int] = None) -> TemplateSyntaxError:
        line = self.source.count("\n", 0, self.pos if pos is None else pos) + 1
        return TemplateSyntaxError(f"template: {TEMPLATE_NAME}:{line}: {msg}")

    def parse(self) -> Template:
        src = self.source
        nodes = []
        trim_next = False
        while True:
            start = src.find("{{", self.pos)
            chunk = src[self.pos:] if start < 0 else src[self.pos:start]
            if trim_next:
                chunk = chunk.lstrip(_WS)
            trim_left = start >= 0 and src.startswith("-", start + 2) and src[start + 3:start + 4] in tuple(_WS)
            if trim_left:
                chunk = chunk.rstrip(_WS)
            if chunk:
                nodes.append(Text(chunk))
            if start < 0:
                break
            self.pos = start + (3 if trim_left else 2)
            if src.startswith("/*", self._skip_ws(self.pos) if trim_left else self.pos):
                trim_next = self._comment()
                continue
            pipeline, trim_next = self._action()
            nodes.append(Action(pipeline, src.count("\n", 0, start) + 1))
        return Template(src, tuple(nodes))

    def _skip_ws(self, pos: int) -> int:
        while pos < len(self.source) and self.source[pos] in _WS:
            pos += 1
        return pos

    def _close(self) -> Optional[bool]:
        """If the action closes at self.pos, consume it and return its trim flag."""
        src = self.source
        end = self._skip_ws(self.pos)
        if end > self.pos and src.startswith("-}}", end):
            self.pos = end + 3
            return True
        if src.startswith("}}", end):
            self.pos = end + 2
            return False
        return None

    def _comment(self) -> bool:
        src = self.source
        begin = src.index("/*", self.pos)
        end = src.find("*/", begin + 2)
        if end < 0:
            raise self.error("unclosed comment", begin)
        self.pos = end + 2
        trim = self._close()
        if trim is None:
            raise self.error("comment ends before closing delimiter", end)
        return trim

    def _tokens(self):
        """Lex one action body; returns (tokens, trim_right)."""
        src = self.source
        tokens = []
        while True:
            trim = self._close()
            if trim is not None:
                return tokens, trim
            self.pos = self._skip_ws(self.pos)
            if self.pos >= len(src):
                raise self.error("unclosed action")
            m = _TOKEN_RE.match(src, self.pos)
            if m is None:
                if src[self.pos] in "\"`":
                    raise self.error("unterminated quoted string")
                raise self.error(f"unexpected {src[self.pos]!r} in command")
            tokens.append((m.lastgroup, m.group(), m.start(), m.end()))
            self.pos = m.end()

    def _action(self):
        tokens, trim = self._tokens()
        if not tokens:
            raise self.error("missing value for command")
        pipeline, rest = self._pipeline(tokens, 0, top=True)
        if rest != len(tokens):
            raise self.error(f"unexpected {tokens[rest][1]!r} in operand", tokens[rest][2])
        return pipeline, trim

    def _pipeline(self, tokens, i, top=False):
        commands = []
        while True:
            command, i = self._command(tokens, i)
            commands.append(command)
            if i < len(tokens) and tokens[i][1] == "|":
                i += 1
                continue
            if not top and (i >= len(tokens) or tokens[i][1] != ")"):
                raise self.error("unclosed left paren", tokens[i - 1][2])
            return Pipeline(tuple(commands)), i

    def _command(self, tokens, i):
        args = []
        first = i
        while i < len(tokens) and tokens[i][1] not in ("|", ")"):
            kind, text, pos, end = tokens[i]
            if text == "(":
                inner, i = self._pipeline(tokens, i + 1)
                args.append(inner)
                i += 1
                continue
            args.append(self._operand(kind, text, pos))
            i += 1
        if not args:
            where = tokens[i][2] if i < len(tokens) else tokens[-1][2]
            raise self.error("missing value for command", where)
        source = self.source[tokens[first][2]:tokens[i - 1][3]]
        return Command(tuple(args), source), i

    def _operand(self, kind, text, pos):
        if kind == "field":
            return Field(tuple(text[1:].split(".")))
        if kind == "dot":
            return Dot()
        if kind == "number":
            try:
                return Literal(_parse_int(text))
            except ValueError:
                raise self.error(f"bad number syntax: {text!r}", pos) from None
        if kind == "string":
            try:
                return Literal(_unquote(text[1:-1]))
            except ValueError as e:
                raise self.error(str(e), pos) from None
        if kind == "raw":
            return Literal(text[1:-1])
        if kind == "ident":
            if text in FUNCS:
                return Func(text)
            if text in _KEYWORDS:
                raise self.error(f"unsupported keyword {text!r}", pos)
            raise self.error(f'function "{text}" not defined', pos)
        raise self.error(f"unexpected {text!r} in operand", pos)


@functools.lru_cache(maxsize=128)
def parse(source: str) -> Template:
    """Parse a template; raises TemplateSyntaxError. Results are cached by text."""
    return _Parser(source).parse()


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

_MISSING = object()


class _Exec:
    def __init__(self, ctx: FormatContext, line: int):
        self.ctx = ctx
        self.line = line

    def error(self, command: Command, msg: str) -> TemplateExecError:
        return TemplateExecError(
            f'template: {TEMPLATE_NAME}:{self.line}: executing "{TEMPLATE_NAME}" '
            f"at <{command.source}>: {msg}"
        )

    def emit(self, pipeline: Pipeline) -> bytes:
        value = self.pipeline(pipeline)
        if isinstance(value, FormatContext):
            raise self.error(pipeline.commands[-1], "cannot print the context; use .Iterations, .Salt or .Key")
        if _is_int(value):
            return str(value).encode("ascii")
        return _to_bytes(value)

    def pipeline(self, pipeline: Pipeline) -> Value:
        value = _MISSING
        for command in pipeline.commands:
            value = self.command(command, value)
        return value

    def command(self, command: Command, piped) -> Value:
        head, rest = command.args[0], command.args[1:]
        if isinstance(head, Func):
            args = [self.arg(command, a) for a in rest]
            if piped is not _MISSING:
                args.append(piped)
            return self.call(command, head.name, args)
        if rest or piped is not _MISSING:
            raise self.error(command, f"can't give argument to non-function {command.source.split()[0]}")
        return self.arg(command, head)

    def arg(self, command: Command, node) -> Value:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Dot):
            return self.ctx
        if isinstance(node, Field):
            return self.field(command, node)
        if isinstance(node, Pipeline):
            return self.pipeline(node)
        if isinstance(node, Func):
            return self.call(command, node.name, [])
        raise self.error(command, f"unexpected node {type(node).__name__}")

    def field(self, command: Command, node: Field) -> Value:
        name = node.names[0]
        if name not in FIELDS:
            raise self.error(command, f"can't evaluate field {name} in type context")
        value = getattr(self.ctx, FIELDS[name])
        if len(node.names) > 1:
            raise self.error(command, f"can't evaluate field {node.names[1]} in type {_describe(value)}")
        return value

    def call(self, command: Command, name: str, args: list) -> Value:
        func, arity = FUNCS[name]
        if arity is None and not args:
            raise self.error(command, f"wrong number of args for {name}: want at least 1 got 0")
        if arity is not None and len(args) != arity:
            raise self.error(command, f"wrong number of args for {name}: want {arity} got {len(args)}")
        try:
            return func(*args)
        except (TypeError, ValueError) as e:
            raise self.error(command, f"error calling {name}: {e}") from e


def render_bytes(source: str, ctx: FormatContext) -> bytes:
    """Render `source` against `ctx`, returning the raw output bytes."""
    # Checked before the cache, which needs a hashable key.
    if not isinstance(source, str):
        raise TemplateSyntaxError(f"template: {TEMPLATE_NAME}: source must be a string, got {type(source).__name__}")
    template = parse(source)
    logger.debug("Rendering format template (%d chars)", len(source))
    return template.execute(ctx)


def render(source: str, ctx: FormatContext) -> str:
    """
    Render `source` against `ctx`.

    Raw bytes in the output (for example from `bin`) are kept as
    surrogate escapes, so `result.encode("utf-8", "surrogateescape")`
    gives back the exact bytes.

    Raises:
        TemplateSyntaxError: If the template does not parse
        TemplateExecError: If a field or helper call fails
    """
    return render_bytes(source, ctx).decode("utf-8", "surrogateescape")
