"""
script_fields.py - Computed ("script") field strategies

A script field's value and consumed length come from user logic instead
of a built-in type rule: checksums, conditional layouts, derived values.

Two ways to supply that logic:

1. Register a named strategy and put its name in the field's ``script``:

       registry = ScriptRegistry()

       @registry.register('crc8')
       async def crc8(ctx):
           data = await ctx.read_range(0, ctx.offset)
           return ScriptResult(value=sum(data) & 0xFF, length=0)

2. Put inline source in ``script``. It becomes the body of an async
   function with these names in scope: ``ctx``, ``source``, ``size``,
   ``offset``, ``fields``, ``read_range``, plus ``struct`` and ``math``:

       b = await read_range(offset, offset + 2)
       return {'value': b[0] * 256 + b[1], 'length': 2}

   Inline source runs with a restricted builtins table. Imports, any
   attribute or name starting with an underscore, and frame/code
   attributes (``cr_frame``, ``f_globals``, ...) are rejected before
   compilation.

Strategies never see the byte source or the decoded field objects: a
ScriptContext offers ``size``, ``offset``, a ``read_range`` returning
bytes, and ``fields``, a read-only snapshot of id -> FieldSnapshot for
the current scope. Inline ``source`` is the context itself.

Either way the strategy returns a ScriptResult or a mapping with
``value`` and ``length`` keys; ``length`` must be a non-negative number.
"""

import ast
import inspect
import logging
import math
import struct
import textwrap
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, NamedTuple, Optional, Union

from byte_source import ByteSource
from structure_model import DecodedField

logger = logging.getLogger(__name__)


class ScriptError(ValueError):
    """Script could not be compiled, raised, or returned a bad result."""


@dataclass
class ScriptResult:
    value: Any
    length: int


class FieldSnapshot(NamedTuple):
    """Plain copy of a decoded field as a script sees it."""
    value: Any
    offset: int
    length: int
    raw_value: bytes

    @classmethod
    def of(cls, decoded: DecodedField) -> 'FieldSnapshot':
        return cls(decoded.value, decoded.offset, decoded.length, bytes(decoded.raw_value))


class ScriptContext:
    """Everything a strategy may look at. ``fields`` is the current scope only."""

    def __init__(self, source: ByteSource, offset: int,
                 fields: Optional[Mapping[str, DecodedField]] = None):
        self._source = source
        self.size = source.size
        self.offset = offset
        self.fields = MappingProxyType(
            {fid: FieldSnapshot.of(decoded) for fid, decoded in (fields or {}).items()})

    async def read_range(self, start: int, end: int) -> bytes:
        return bytes(await self._source.read_range(start, end))

    @property
    def values(self) -> Dict[str, Any]:
        return {fid: snapshot.value for fid, snapshot in self.fields.items()}


StrategyReturn = Union[ScriptResult, Mapping[str, Any]]
Strategy = Callable[[ScriptContext], Union[StrategyReturn, Awaitable[StrategyReturn]]]


SAFE_BUILTINS = {
    'abs': abs, 'all': all, 'any': any, 'bool': bool, 'bytes': bytes,
    'bytearray': bytearray, 'chr': chr, 'dict': dict, 'divmod': divmod,
    'enumerate': enumerate, 'filter': filter, 'float': float, 'hex': hex,
    'int': int, 'isinstance': isinstance, 'len': len, 'list': list,
    'map': map, 'max': max, 'min': min, 'ord': ord, 'pow': pow,
    'range': range, 'reversed': reversed, 'round': round, 'set': set,
    'sorted': sorted, 'str': str, 'sum': sum, 'tuple': tuple, 'zip': zip,
    'True': True, 'False': False, 'None': None,
    'Exception': Exception, 'ValueError': ValueError,
}

_SCRIPT_PARAMS = ('ctx', 'source', 'size', 'offset', 'fields', 'read_range')

# Attributes that lead from a coroutine, generator or traceback back to
# module globals or code objects. str.format walks attribute names given
# in the format text, so it is blocked with format_map.
BLOCKED_ATTRIBUTES = frozenset({
    'cr_frame', 'cr_code', 'cr_await', 'gi_frame', 'gi_code', 'gi_yieldfrom',
    'ag_frame', 'ag_code', 'ag_await', 'f_globals', 'f_locals', 'f_back',
    'f_builtins', 'f_code', 'tb_frame', 'tb_next', 'path', 'format', 'format_map',
})


def _check_inline_source(tree: ast.AST) -> None:
    for node in ast.walk(tree):
        if isinstance(node, (ast.Import, ast.ImportFrom)):
            raise ScriptError("imports are not allowed in scripts")
        if isinstance(node, ast.Attribute) and (
                node.attr.startswith('_') or node.attr in BLOCKED_ATTRIBUTES):
            raise ScriptError(f"access to '{node.attr}' is not allowed in scripts")
        if isinstance(node, ast.Name) and node.id.startswith('_'):
            raise ScriptError(f"name '{node.id}' is not allowed in scripts")
        if isinstance(node, (ast.Global, ast.Nonlocal)):
            raise ScriptError("global/nonlocal are not allowed in scripts")


def compile_inline(source_text: str) -> Strategy:
    """Compile inline script source into a strategy. Raises ScriptError."""
    body = textwrap.dedent(source_text).strip('\n')
    if not body.strip():
        raise ScriptError("script is empty")

    code = "async def script_body({}):\n{}\n".format(
        ', '.join(_SCRIPT_PARAMS), textwrap.indent(body, '    '))
    try:
        tree = ast.parse(code, filename='<script>')
    except SyntaxError as e:
        raise ScriptError(f"syntax error on line {(e.lineno or 2) - 1}: {e.msg}")
    _check_inline_source(tree)

    namespace = {'__builtins__': SAFE_BUILTINS, 'struct': struct, 'math': math}
    exec(compile(tree, '<script>', 'exec'), namespace)
    body_fn = namespace['script_body']

    async def inline_strategy(ctx: ScriptContext):
        return await body_fn(ctx, ctx, ctx.size, ctx.offset,
                             ctx.fields, ctx.read_range)

    return inline_strategy


class ScriptRegistry:
    """Named strategies, looked up by a field's ``script`` text."""

    def __init__(self, strategies: Optional[Dict[str, Strategy]] = None):
        self._strategies: Dict[str, Strategy] = dict(strategies or {})
        self._inline_cache: Dict[str, Strategy] = {}

    def register(self, name: str, strategy: Optional[Strategy] = None):
        """Register ``strategy`` under ``name``; usable as a decorator."""
        if strategy is None:
            def decorator(fn: Strategy) -> Strategy:
                self._strategies[name] = fn
                return fn
            return decorator
        self._strategies[name] = strategy
        return strategy

    def __contains__(self, name: str) -> bool:
        return name in self._strategies

    def get(self, name: str) -> Optional[Strategy]:
        return self._strategies.get(name)

    def resolve(self, script_text: str) -> Strategy:
        """Registered strategy named by the text, else compiled inline source."""
        named = self._strategies.get(script_text.strip())
        if named is not None:
            return named
        if script_text not in self._inline_cache:
            self._inline_cache[script_text] = compile_inline(script_text)
        return self._inline_cache[script_text]


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_result(result: Any) -> ScriptResult:
    """Validate a strategy's return value. Raises ScriptError."""
    if isinstance(result, ScriptResult):
        value, length = result.value, result.length
    elif isinstance(result, Mapping) and 'value' in result and 'length' in result:
        value, length = result['value'], result['length']
    else:
        raise ScriptError('Script must return a mapping with "value" and "length" keys')

    if not _is_number(length) or length != length or length < 0:
        raise ScriptError('Script "length" must be a non-negative number')
    if length == float('inf'):
        raise ScriptError('Script "length" must be finite')

    return ScriptResult(value=value, length=int(length))


async def run_script(script_text: str, ctx: ScriptContext,
                     registry: Optional[ScriptRegistry] = None) -> ScriptResult:
    """
    Resolve and execute a script, returning its validated result.

    Every failure, from compilation through the strategy raising to a
    malformed return value, surfaces as ScriptError.
    """
    registry = registry if registry is not None else ScriptRegistry()
    try:
        strategy = registry.resolve(script_text)
        result = strategy(ctx)
        if inspect.isawaitable(result):
            result = await result
    except ScriptError:
        raise
    except Exception as e:
        raise ScriptError(str(e) or type(e).__name__) from e

    return coerce_result(result)
