"""
Lossless protobuf text-format codec

Parses the text format used by Caffe solver and net definitions
("name: value", "name { ... }", "# comments") into an ordered field tree and
serializes it back. Whitespace, comments and separators are kept as trivia
nodes, so serialize(parse(text)) reproduces the input byte for byte and only
the fields explicitly mutated change.
"""

import re
from typing import Any, Iterator, List, Optional, Union

from ..errors import ConfigParseError

_TOKEN_PATTERN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<comment>\#[^\n]*)
  | (?P<string>"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')
  | (?P<ident>[A-Za-z0-9_.+\-]+)
  | (?P<punct>[{}<>:;,\[\]])
    """,
    re.VERBOSE,
)

_CLOSING = {"{": "}", "<": ">"}

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "?": "?",
}
_ESCAPE_PATTERN = re.compile(r"\\(x[0-9A-Fa-f]{1,2}|[0-7]{1,3}|.)")


class _Token:
    __slots__ = ("kind", "text", "line", "column")

    def __init__(self, kind: str, text: str, line: int, column: int):
        self.kind = kind
        self.text = text
        self.line = line
        self.column = column

    @property
    def is_trivia(self) -> bool:
        return self.kind in ("ws", "comment")


def _tokenize(text: str) -> List[_Token]:
    tokens = []
    pos = 0
    line = 1
    line_start = 0
    while pos < len(text):
        match = _TOKEN_PATTERN.match(text, pos)
        if match is None:
            raise ConfigParseError(
                f"Unexpected character {text[pos]!r}",
                line=line,
                column=pos - line_start + 1,
            )
        token_text = match.group()
        tokens.append(_Token(match.lastgroup, token_text, line, pos - line_start + 1))
        newlines = token_text.count("\n")
        if newlines:
            line += newlines
            line_start = pos + token_text.rindex("\n") + 1
        pos = match.end()
    return tokens


def unquote(raw: str) -> str:
    """Decode a quoted text-format string literal"""

    def _replace(match):
        escape = match.group(1)
        if escape[0] == "x":
            return chr(int(escape[1:], 16))
        if escape[0] in "01234567":
            return chr(int(escape, 8))
        return _ESCAPES.get(escape, escape)

    return _ESCAPE_PATTERN.sub(_replace, raw[1:-1])


def quote(value: str) -> str:
    """Encode a Python string as a double-quoted text-format literal"""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )
    return f'"{escaped}"'


def format_scalar(value: Any) -> str:
    """Render a Python value as text-format scalar source"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return quote(str(value))


class Trivia:
    """Whitespace, comments and field separators kept verbatim"""

    __slots__ = ("text",)

    def __init__(self, text: str):
        self.text = text

    def serialize(self) -> str:
        return self.text

    def __repr__(self):
        return f"Trivia({self.text!r})"


class Field:
    """
    A single field: either a scalar ("name: value") or a nested message
    ("name { ... }").

    The separator holds the raw text between the name and the value (colon and
    surrounding whitespace), so untouched fields serialize unchanged.
    """

    def __init__(
        self,
        name: str,
        separator: str = ": ",
        value: Optional[str] = None,
        message: Optional["Message"] = None,
        open_delim: str = "{",
        close_delim: str = "}",
    ):
        if (value is None) == (message is None):
            raise ValueError("Field needs exactly one of value or message")
        self.name = name
        self.separator = separator
        self.value = value
        self.message = message
        self.open_delim = open_delim
        self.close_delim = close_delim

    @property
    def is_message(self) -> bool:
        return self.message is not None

    @property
    def text(self) -> Optional[str]:
        """Decoded scalar value: strings unquoted, other literals verbatim"""
        if self.value is None:
            return None
        raw = self.value
        if raw[:1] in ('"', "'"):
            # adjacent literals concatenate: "a" "b" == "ab"
            parts = [token.text for token in _tokenize(raw) if token.kind == "string"]
            return "".join(unquote(part) for part in parts)
        return raw

    def set_raw(self, raw: str):
        if self.is_message:
            raise TypeError(f"Field '{self.name}' is a message, not a scalar")
        self.value = raw

    def set(self, value: Any):
        self.set_raw(format_scalar(value))

    def serialize(self) -> str:
        if self.is_message:
            return (
                f"{self.name}{self.separator}{self.open_delim}"
                f"{self.message.serialize()}{self.close_delim}"
            )
        return f"{self.name}{self.separator}{self.value}"

    def __repr__(self):
        if self.is_message:
            return f"Field({self.name!r}, message={self.message!r})"
        return f"Field({self.name!r}, value={self.value!r})"


Node = Union[Trivia, Field]


class Message:
    """Ordered sequence of fields and trivia making up one message body"""

    def __init__(self, nodes: Optional[List[Node]] = None, depth: int = 0):
        self.nodes: List[Node] = list(nodes or [])
        self.depth = depth

    def __iter__(self) -> Iterator[Field]:
        return (node for node in self.nodes if isinstance(node, Field))

    def __repr__(self):
        return f"Message({[field.name for field in self]})"

    def fields(self, name: Optional[str] = None) -> List[Field]:
        return [field for field in self if name is None or field.name == name]

    def get(self, name: str) -> Optional[Field]:
        for field in self:
            if field.name == name:
                return field
        return None

    def get_value(self, name: str, default: Optional[str] = None) -> Optional[str]:
        field = self.get(name)
        if field is None or field.is_message:
            return default
        return field.text

    def set_value(self, name: str, value: Any) -> Field:
        """Set the first scalar field called name, appending it when absent"""
        field = self.get(name)
        if field is None:
            field = Field(name, ": ", value=format_scalar(value))
            self.append(field)
        else:
            field.set(value)
        return field

    def get_or_create_message(self, name: str) -> "Message":
        field = self.get(name)
        if field is None:
            field = Field(name, " ", message=Message([Trivia(" ")], self.depth + 1))
            self.append(field)
        elif not field.is_message:
            raise TypeError(f"Field '{name}' is a scalar, not a message")
        return field.message

    def append(self, field: Field):
        """Append a field after the last existing one, matching its indentation"""
        last_index = None
        for index, node in enumerate(self.nodes):
            if isinstance(node, Field):
                last_index = index

        if last_index is None:
            # empty body: keep leading comments, then the field on its own line
            leading = "".join(node.text for node in self.nodes)
            if self.depth:
                indent = "  " * self.depth
                closing_indent = "  " * (self.depth - 1)
                self.nodes = [Trivia(f"\n{indent}"), field, Trivia(f"\n{closing_indent}")]
            else:
                self.nodes = [Trivia(leading)] if leading.strip() else []
                if self.nodes and not leading.endswith("\n"):
                    self.nodes.append(Trivia("\n"))
                self.nodes.extend([field, Trivia("\n")])
            return

        indent = ""
        if last_index > 0 and isinstance(self.nodes[last_index - 1], Trivia):
            previous = self.nodes[last_index - 1].text
            if "\n" in previous:
                indent = previous[previous.rindex("\n") + 1:]
        insert_at = last_index + 1
        self.nodes[insert_at:insert_at] = [Trivia(f"\n{indent}"), field]

    def serialize(self) -> str:
        return "".join(node.serialize() for node in self.nodes)


class _Parser:
    def __init__(self, text: str, source: Optional[str] = None):
        self.source = source
        self.tokens = _tokenize(text)
        self.pos = 0

    def _error(self, message: str, token: Optional[_Token] = None) -> ConfigParseError:
        if token is None and self.pos < len(self.tokens):
            token = self.tokens[self.pos]
        if token is None and self.tokens:
            last = self.tokens[-1]
            return ConfigParseError(
                message, line=last.line, column=last.column, source=self.source
            )
        line = token.line if token else 0
        column = token.column if token else 0
        return ConfigParseError(message, line=line, column=column, source=self.source)

    def _peek(self) -> Optional[_Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def _trivia(self, separators: bool = False) -> str:
        parts = []
        while self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            if token.is_trivia or (separators and token.text in (";", ",")):
                parts.append(token.text)
                self.pos += 1
            else:
                break
        return "".join(parts)

    def parse(self) -> Message:
        return self._message(None, 0)

    def _message(self, close_delim: Optional[str], depth: int) -> Message:
        message = Message(depth=depth)
        while True:
            trivia = self._trivia(separators=True)
            if trivia:
                message.nodes.append(Trivia(trivia))

            token = self._peek()
            if token is None:
                if close_delim is not None:
                    raise self._error(f"Unexpected end of input, expected '{close_delim}'")
                return message
            if close_delim is not None and token.text == close_delim:
                return message
            if token.kind != "ident":
                raise self._error(f"Expected field name, found {token.text!r}", token)

            message.nodes.append(self._field(depth))

    def _field(self, depth: int) -> Field:
        name = self.tokens[self.pos].text
        self.pos += 1
        separator = self._trivia()

        has_colon = False
        token = self._peek()
        if token is not None and token.text == ":":
            has_colon = True
            self.pos += 1
            separator += ":" + self._trivia()
            token = self._peek()

        if token is None:
            raise self._error(f"Missing value for field '{name}'")

        if token.text in _CLOSING:
            self.pos += 1
            close_delim = _CLOSING[token.text]
            body = self._message(close_delim, depth + 1)
            self.pos += 1
            return Field(
                name,
                separator,
                message=body,
                open_delim=token.text,
                close_delim=close_delim,
            )

        if not has_colon:
            raise self._error(f"Expected ':' or '{{' after field '{name}'", token)
        return Field(name, separator, value=self._scalar(name))

    def _scalar(self, name: str) -> str:
        token = self._peek()
        if token.text == "[":
            return self._list(name)
        if token.kind == "string":
            self.pos += 1
            raw = token.text
            while True:
                mark = self.pos
                gap = self._trivia()
                following = self._peek()
                if following is not None and following.kind == "string" and "#" not in gap:
                    raw += gap + following.text
                    self.pos += 1
                else:
                    self.pos = mark
                    return raw
        if token.kind == "ident":
            self.pos += 1
            return token.text
        raise self._error(f"Invalid value {token.text!r} for field '{name}'", token)

    def _list(self, name: str) -> str:
        start = self.tokens[self.pos]
        parts = []
        while self.pos < len(self.tokens):
            token = self.tokens[self.pos]
            parts.append(token.text)
            self.pos += 1
            if token.text == "]":
                return "".join(parts)
            if token.text in ("{", "}", "<", ">", ":"):
                raise self._error(f"Unsupported list element in field '{name}'", token)
        raise self._error(f"Unterminated list for field '{name}'", start)


def parse_prototxt(text: str, source: Optional[str] = None) -> Message:
    """
    Parse text-format configuration into a lossless field tree

    Args:
        text: Configuration text
        source: Optional reference or path, recorded on parse errors

    Returns:
        Top-level message

    Raises:
        ConfigParseError: If the text violates the grammar
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ConfigParseError(f"Configuration is not valid UTF-8: {e}", source=source)
    try:
        return _Parser(text, source).parse()
    except ConfigParseError as e:
        if e.source is None:
            e.source = source
        raise


def serialize_prototxt(message: Message) -> str:
    return message.serialize()
