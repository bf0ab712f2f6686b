"""
Rewriter for Ripper concrete trees

Turns the nested tagged arrays returned by `Ripper.sexp` into canonical
parser-gem nodes. Each concrete tag has one `on_<tag>` rule (scanner tokens
such as `@int` map to `on_at_int`); `process` routes a node to its rule with
the node's fields as positional arguments.

Rules return a canonical node, None for void statements, and for a few
internal shapes (identifiers, operators, argument lists) a name or a list
that the calling rule folds into its own node.
"""

from __future__ import annotations

import inspect
import logging
from fractions import Fraction
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence

from .builder import NodeFactory
from .errors import InvalidAssignmentTarget, UnsupportedConstruct
from .literals import (
    LiteralTable,
    compose_string,
    compose_symbol,
    compose_xstring,
    decode_escapes,
    merge_plain,
)
from .tree import Node, SourcePosition, Symbol

logger = logging.getLogger(__name__)

Concrete = Any

WRITER_TYPES = {
    'const': 'casgn',
    'lvar': 'lvasgn',
    'gvar': 'gvasgn',
    'ivar': 'ivasgn',
    'cvar': 'cvasgn',
}

NUMERIC_TYPES = ('int', 'float')


def is_concrete_node(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and len(value) > 0 and isinstance(value[0], str)


def is_concrete_list(value: Any) -> bool:
    return isinstance(value, (list, tuple)) and not is_concrete_node(value)


def is_scanner_token(value: Any) -> bool:
    return is_concrete_node(value) and value[0].startswith('@')


def token_position(value: Any) -> Optional[SourcePosition]:
    if is_scanner_token(value) and len(value) > 2 and isinstance(value[2], (list, tuple)):
        return SourcePosition(value[2][0], value[2][1])
    return None


def is_excessed_comma(rest: Any) -> bool:
    """`|a,|`: Ripper marks the trailing comma with 0 (or an excessed_comma node)."""
    if type(rest) is int and rest == 0:
        return True
    return is_concrete_node(rest) and rest[0] == 'excessed_comma'


def rule_name(tag: str) -> str:
    return 'on_at_' + tag[1:] if tag.startswith('@') else 'on_' + tag


class Rule(NamedTuple):
    method: Callable[..., Any]
    min_fields: int
    max_fields: Optional[int]


def collect_rules(cls: type) -> Dict[str, Rule]:
    """Closed registry tag -> rule, with the field counts each rule accepts."""
    rules: Dict[str, Rule] = {}

    for name, method in inspect.getmembers(cls, inspect.isfunction):
        if not name.startswith('on_'):
            continue

        tag = '@' + name[len('on_at_'):] if name.startswith('on_at_') else name[len('on_'):]
        params = list(inspect.signature(method).parameters.values())[1:]
        positional = [p for p in params if p.kind is p.POSITIONAL_OR_KEYWORD]
        required = [p for p in positional if p.default is p.empty]
        variadic = any(p.kind is p.VAR_POSITIONAL for p in params)
        rules[tag] = Rule(method, len(required), None if variadic else len(positional))

    return rules


class Rewriter:
    """One rewrite call: builder, file name and literal table travel together."""

    RULES: Dict[str, Rule] = {}

    def __init__(self, builder: NodeFactory, file: str = '(string)',
                 literals: Optional[LiteralTable] = None):
        self.builder = builder
        self.file = file
        self.literals = literals if literals is not None else LiteralTable.empty()

    # ========================================================================
    # Dispatch
    # ========================================================================

    def rewrite(self, program: Concrete) -> Optional[Node]:
        logger.debug("rewriting %s", self.file)
        root = self.process(program)
        logger.debug("rewrote %s into %s", self.file, root.type if isinstance(root, Node) else 'empty program')
        return root

    def process(self, node: Concrete) -> Any:
        if node is None:
            return None
        if not is_concrete_node(node):
            raise UnsupportedConstruct(f"Expected a concrete node, got {node!r}")

        tag, *fields = node
        rule = self.RULES.get(tag)
        if rule is None:
            raise UnsupportedConstruct(f"Unsupported construct {tag}", token_position(node))

        if len(fields) < rule.min_fields or (rule.max_fields is not None and len(fields) > rule.max_fields):
            raise UnsupportedConstruct(f"Unexpected shape for {tag}: {len(fields)} fields", token_position(node))

        return rule.method(self, *fields)

    def process_many(self, nodes: Optional[Sequence[Concrete]]) -> List[Any]:
        if not nodes:
            return []
        return [self.process(node) for node in nodes]

    def s(self, type_: str, *children: Any, loc: Optional[SourcePosition] = None) -> Node:
        return self.builder.make_node(type_, list(children), loc)

    # ========================================================================
    # Shared helpers
    # ========================================================================

    def statements(self, stmts: Concrete) -> List[Node]:
        """Process a statement list, leaving out void statements."""
        if stmts is None or stmts is False:
            return []
        if is_concrete_node(stmts):
            stmts = [stmts]
        return [node for node in self.process_many(stmts) if node is not None]

    def to_single_node(self, nodes: Sequence[Node]) -> Optional[Node]:
        match len(nodes):
            case 0:
                return None
            case 1:
                return nodes[0]
            case _:
                return self.s('begin', *nodes)

    def body(self, stmts: Concrete) -> Optional[Node]:
        return self.to_single_node(self.statements(stmts))

    def flatten_sequence(self, node: Optional[Node]) -> List[Optional[Node]]:
        if node is not None and node.type == 'begin':
            return list(node.children)
        return [node]

    def token_name(self, token: Concrete) -> Symbol:
        """Name carried by an identifier-like token (or a bare symbol field)."""
        if isinstance(token, str):
            return Symbol(token)
        if is_scanner_token(token):
            text = token[1]
            if token[0] == '@label':
                text = text[:-1]
            return Symbol(text)
        raise UnsupportedConstruct(f"Expected a name token, got {token!r}")

    def dot_text(self, dot: Concrete) -> str:
        if isinstance(dot, str):
            return dot
        if is_scanner_token(dot):
            return dot[1]
        raise UnsupportedConstruct(f"Unsupported call operator {dot!r}")

    def send_type(self, dot: Concrete) -> str:
        return 'csend' if self.dot_text(dot) == '&.' else 'send'

    def call_args(self, args: Concrete) -> List[Node]:
        """Flatten every argument-list shape into a list of canonical nodes."""
        if args is None or args is False:
            return []
        if is_concrete_list(args):
            return self.process_many(args)

        match args[0]:
            case 'args_add_block' | 'arg_paren':
                return self.process(args)
            case 'args_add_star':
                _, pre, star, *post = args
                return [*self.call_args(pre), self.s('splat', self.process(star)), *self.process_many(post)]
            case 'args_new' | 'mrhs_new':
                return []

        return [self.process(args)]

    def write_value(self, target: Node, value: Optional[Node]) -> Node:
        return target.updated(children=[*target.children, value])

    # ========================================================================
    # Program & statements
    # ========================================================================

    def on_program(self, stmts):
        return self.body(stmts)

    def on_void_stmt(self):
        return None

    def on_paren(self, stmts):
        if not isinstance(stmts, (list, tuple)):
            return self.s('begin')

        if is_concrete_node(stmts):
            nodes = [self.process(stmts)]
        else:
            nodes = self.statements(stmts)

        if len(nodes) == 1:
            return nodes[0] if nodes[0] is not None else self.s('begin')
        return self.s('begin', *nodes)

    def on_BEGIN(self, stmts):
        return self.s('preexe', self.body(stmts))

    def on_END(self, stmts):
        return self.s('postexe', self.body(stmts))

    # ========================================================================
    # Scanner tokens
    # ========================================================================

    def on_at_int(self, value, location):
        return self.s('int', parse_int(value), loc=SourcePosition(*location))

    def on_at_float(self, value, location):
        return self.s('float', float(value.replace('_', '')), loc=SourcePosition(*location))

    def on_at_rational(self, value, location):
        return self.s('rational', parse_rational(value[:-1]), loc=SourcePosition(*location))

    def on_at_imaginary(self, value, location):
        text = value[:-1]
        if text.endswith('r'):
            imag = float(parse_rational(text[:-1]))
        elif '.' in text or ('e' in text.lower() and not text.lower().startswith('0x')):
            imag = float(text.replace('_', ''))
        else:
            imag = parse_int(text)
        return self.s('complex', complex(0, imag), loc=SourcePosition(*location))

    def on_at_ident(self, name, _location):
        return Symbol(name)

    def on_at_op(self, value, _location):
        return Symbol(value)

    def on_at_period(self, value, _location):
        return Symbol(value)

    def on_at_label(self, value, _location):
        return Symbol(value[:-1])

    def on_at_const(self, name, location):
        return self.s('const', None, Symbol(name), loc=SourcePosition(*location))

    def on_at_ivar(self, name, location):
        return self.s('ivar', Symbol(name), loc=SourcePosition(*location))

    def on_at_cvar(self, name, location):
        return self.s('cvar', Symbol(name), loc=SourcePosition(*location))

    def on_at_gvar(self, name, location):
        return self.s('gvar', Symbol(name), loc=SourcePosition(*location))

    def on_at_backref(self, value, location):
        loc = SourcePosition(*location)
        if value[1:].isdigit():
            return self.s('nth_ref', int(value[1:]), loc=loc)
        return self.s('back_ref', Symbol(value), loc=loc)

    def on_at_kw(self, keyword, location):
        loc = SourcePosition(*location)

        match keyword:
            case 'nil' | 'true' | 'false' | 'self':
                return self.s(keyword, loc=loc)
            case '__LINE__':
                if self.builder.emit_line_file_literals:
                    return self.s('int', location[0], loc=loc)
                return self.s('__LINE__', loc=loc)
            case '__FILE__':
                if self.builder.emit_line_file_literals:
                    return self.s('str', self.file, loc=loc)
                return self.s('__FILE__', loc=loc)
            case '__ENCODING__':
                if self.builder.emit_encoding:
                    return self.s('__ENCODING__', loc=loc)
                return self.s('const', self.s('const', None, Symbol('Encoding')), Symbol('UTF_8'), loc=loc)

        # keywords used as method names (`def class`, `foo.end`)
        return Symbol(keyword)

    def on_at_tstring_content(self, value, location):
        return self.s('str', self.literals.decode(value, location), loc=SourcePosition(*location))

    def on_at_CHAR(self, value, location):
        return self.s('str', decode_escapes(value[1:], tuple(location)), loc=SourcePosition(*location))

    def on_at_regexp_end(self, value, location):
        options = sorted(Symbol(ch) for ch in value[1:])
        return self.s('regopt', *options, loc=SourcePosition(*location))

    # ========================================================================
    # Variables & constants
    # ========================================================================

    def on_var_ref(self, ref):
        if not is_scanner_token(ref):
            raise UnsupportedConstruct(f"Unsupported var_ref {ref!r}")

        match ref[0]:
            case '@ident':
                return self.s('lvar', self.token_name(ref), loc=token_position(ref))
            case '@kw' | '@ivar' | '@cvar' | '@gvar' | '@const' | '@backref':
                return self.process(ref)

        raise UnsupportedConstruct(f"Unsupported var_ref {ref[0]}", token_position(ref))

    def on_var_field(self, field):
        if field is None:
            return None

        node = self.process(field)
        if isinstance(node, str):
            return self.s('lvar', node, loc=token_position(field))
        return node

    def on_vcall(self, mid):
        return self.s('send', None, self.token_name(mid), loc=token_position(mid))

    def on_fcall(self, mid):
        return self.s('send', None, self.token_name(mid), loc=token_position(mid))

    def on_const_ref(self, ref):
        return self.process(ref)

    def on_top_const_ref(self, ref):
        return self.s('const', self.s('cbase'), self.token_name(ref), loc=token_position(ref))

    def on_const_path_ref(self, scope, const):
        return self.s('const', self.process(scope), self.token_name(const), loc=token_position(const))

    def on_const_path_field(self, scope, const):
        return self.s('const', self.process(scope), self.token_name(const), loc=token_position(const))

    def on_top_const_field(self, const):
        return self.s('const', self.s('cbase'), self.token_name(const), loc=token_position(const))

    def on_defined(self, expr):
        return self.s('defined?', self.process(expr))

    # ========================================================================
    # Assignment
    # ========================================================================

    def reader_to_writer(self, ref: Optional[Node]) -> Node:
        if not isinstance(ref, Node):
            raise InvalidAssignmentTarget(f"Cannot assign to {ref!r}")

        if ref.type in WRITER_TYPES:
            return ref.updated(WRITER_TYPES[ref.type])

        match ref.type:
            case 'mlhs':
                return self.s('mlhs', *[self.reader_to_writer(child) for child in ref.children], loc=ref.location)
            case 'restarg':
                if ref.children and ref.children[0] is not None:
                    return self.s('splat', self.reader_to_writer(ref.children[0]), loc=ref.location)
                return self.s('splat', loc=ref.location)
            case 'send' | 'csend':
                recv, mid, *args = ref.children
                return self.s(ref.type, recv, Symbol(f"{mid}="), *args, loc=ref.location)
            case 'index':
                return ref.updated('indexasgn')

        raise InvalidAssignmentTarget(f"Unsupported assignment target {ref.type}", ref.location)

    def on_assign(self, target, value):
        ref = self.reader_to_writer(self.process(target))
        return self.write_value(ref, self.process(value))

    def on_opassign(self, target, op, value):
        ref = self.process(target)
        if ref.type not in ('send', 'csend'):
            ref = self.reader_to_writer(ref)

        op = self.token_name(op)
        value = self.process(value)

        match op:
            case '||=':
                return self.s('or_asgn', ref, value)
            case '&&=':
                return self.s('and_asgn', ref, value)

        return self.s('op_asgn', ref, Symbol(op[:-1]), value)

    def on_massign(self, mlhs, mrhs):
        targets = self.mlhs_targets(mlhs, unwrap=True)
        lhs = self.reader_to_writer(self.s('mlhs', *targets))

        if is_concrete_list(mrhs):
            rhs = self.s('array', *self.process_many(mrhs))
        else:
            rhs = self.process(mrhs)

        return self.s('masgn', lhs, rhs)

    def mlhs_targets(self, mlhs: Concrete, unwrap: bool = False) -> List[Node]:
        """Flatten a Ripper target list into canonical read shapes."""
        if mlhs is None or mlhs is False:
            return []

        if is_concrete_list(mlhs):
            targets: List[Node] = []
            for item in mlhs:
                targets.extend(self.mlhs_targets(item))
            return targets

        match mlhs[0]:
            case 'mlhs':
                members = list(mlhs[1:])
                # `((a, b)), c`: each extra paren level repeats the tag
                while members and isinstance(members[0], str):
                    members.pop(0)
                if unwrap:
                    return self.mlhs_targets(members)
                return [self.s('mlhs', *self.mlhs_targets(members))]
            case 'mlhs_paren':
                inner = mlhs[1]
                if unwrap or (is_concrete_node(inner) and inner[0] == 'mlhs_paren'):
                    return self.mlhs_targets(inner, unwrap=unwrap)
                return [self.s('mlhs', *self.mlhs_targets(inner))]
            case 'mlhs_add_star':
                _, pre, star, *post = mlhs
                rest = self.process(star)
                splat = self.s('restarg', rest) if rest is not None else self.s('restarg')
                return [*self.mlhs_targets(pre), splat, *self.mlhs_targets(list(post))]
            case 'mlhs_add_post':
                _, base, post = mlhs
                return [*self.mlhs_targets(base), *self.mlhs_targets(post)]
            case 'rest_param':
                return [self.splat_target(mlhs[1])]

        return [self.process(mlhs)]

    def splat_target(self, inner: Concrete) -> Node:
        """`*a`, `*a.b` or `*` on the left of a multiple assignment."""
        if inner is None:
            return self.s('restarg')

        target = self.process(inner)
        if isinstance(target, str):
            target = self.s('lvar', target, loc=token_position(inner))
        return self.s('restarg', target, loc=target.location)

    def on_mlhs_paren(self, inner):
        return self.s('mlhs', *self.mlhs_targets(inner))

    def on_mlhs_add_star(self, *fields):
        return self.s('mlhs', *self.mlhs_targets(['mlhs_add_star', *fields]))

    def on_mlhs_add_post(self, base, post):
        return self.s('mlhs', *self.mlhs_targets(['mlhs_add_post', base, post]))

    def on_mrhs_new_from_args(self, first, last=None):
        values = self.call_args(first)
        if last is not None:
            values.append(self.process(last))
        return self.s('array', *values)

    def on_mrhs_new(self):
        return self.s('array')

    def on_mrhs_add_star(self, before, rest):
        if not before:
            values = []
        elif is_concrete_node(before):
            values = list(self.process(before).children)
        else:
            values = self.process_many(before)
        return self.s('array', *values, self.s('splat', self.process(rest)))

    # ========================================================================
    # Literals
    # ========================================================================

    def fragments(self, parts: Concrete) -> List[Node]:
        if parts is None or parts is False:
            return []
        if is_concrete_node(parts):
            if parts[0] in ('string_content', 'xstring_new', 'word'):
                parts = parts[1:]
            else:
                parts = [parts]
        return [node for node in self.process_many(parts) if node is not None]

    def on_string_content(self, *parts):
        return compose_string(self.builder.make_node, self.fragments(list(parts)))

    def on_string_literal(self, content):
        return compose_string(self.builder.make_node, self.fragments(content))

    def on_xstring_literal(self, parts):
        return compose_xstring(self.builder.make_node, self.fragments(parts))

    def on_regexp_literal(self, parts, options):
        if is_concrete_node(parts):
            parts = parts[1:]

        fragments: List[Node] = []
        for part in parts or []:
            if is_scanner_token(part) and part[0] == '@tstring_content':
                # regexp source is kept verbatim
                fragments.append(self.s('str', part[1], loc=token_position(part)))
            else:
                fragments.append(self.process(part))
        return self.s('regexp', *merge_plain(self.builder.make_node, fragments), self.process(options))

    def on_string_embexpr(self, stmts):
        expr = self.body(stmts)
        if expr is None:
            return self.s('begin')
        if expr.type != 'begin':
            return self.s('begin', expr)
        return expr

    def on_string_dvar(self, var):
        return self.process(var)

    def on_string_concat(self, left, right):
        left_node = self.process(left)
        parts = list(left_node.children) if left[0] == 'string_concat' else [left_node]
        return self.s('dstr', *parts, self.process(right))

    def symbol_name(self, inner: Concrete) -> Symbol:
        if is_concrete_node(inner) and inner[0] == 'symbol':
            inner = inner[1]
        return self.token_name(inner)

    def on_symbol_literal(self, inner):
        return self.s('sym', self.symbol_name(inner), loc=token_position(inner[1] if inner[0] == 'symbol' else inner))

    def on_symbol(self, inner):
        return self.s('sym', self.token_name(inner), loc=token_position(inner))

    def on_dyna_symbol(self, parts):
        return compose_symbol(self.builder.make_node, self.fragments(parts))

    def word(self, item: Concrete) -> Node:
        """One %w/%W/%i/%I element."""
        parts = [item] if is_concrete_node(item) else list(item)
        first = parts[0] if parts else None
        fragments = self.fragments(parts)

        if self.literals.is_symbol_list(first[2] if is_scanner_token(first) else None):
            return compose_symbol(self.builder.make_node, fragments)
        return compose_string(self.builder.make_node, fragments)

    def on_array(self, parts):
        if parts is None or parts is False:
            return self.s('array')
        if is_concrete_node(parts):
            return self.s('array', *self.call_args(parts))

        items = []
        for item in parts:
            if is_concrete_list(item) or (is_scanner_token(item) and item[0] == '@tstring_content'):
                items.append(self.word(item))
            else:
                items.append(self.process(item))
        return self.s('array', *items)

    def on_hash(self, assocs):
        if assocs is None:
            return self.s('hash')
        if is_concrete_node(assocs):
            return self.s('hash', *self.process(assocs))
        return self.s('hash', *self.process_many(assocs))

    def on_assoclist_from_args(self, assocs):
        return self.process_many(assocs)

    def on_bare_assoc_hash(self, assocs):
        return self.s('hash', *self.process_many(assocs))

    def on_assoc_new(self, key, value):
        name = self.process(key)
        if isinstance(name, str):
            name = self.s('sym', name, loc=token_position(key))
        return self.s('pair', name, self.process(value))

    def on_assoc_splat(self, value):
        return self.s('kwsplat', self.process(value))

    def on_dot2(self, first, last):
        return self.s('irange', self.process(first), self.process(last))

    def on_dot3(self, first, last):
        return self.s('erange', self.process(first), self.process(last))

    # ========================================================================
    # Definitions
    # ========================================================================

    def on_class(self, name, superclass, bodystmt):
        return self.s('class', self.process(name), self.process(superclass), self.process(bodystmt))

    def on_module(self, name, bodystmt):
        return self.s('module', self.process(name), self.process(bodystmt))

    def on_sclass(self, target, bodystmt):
        return self.s('sclass', self.process(target), self.process(bodystmt))

    def on_def(self, name, params, bodystmt):
        args = self.process(params) or self.s('args')
        return self.s('def', self.token_name(name), args, self.process(bodystmt), loc=token_position(name))

    def on_defs(self, definee, _dot, name, params, bodystmt):
        args = self.process(params) or self.s('args')
        return self.s('defs', self.process(definee), self.token_name(name), args, self.process(bodystmt),
                      loc=token_position(name))

    def on_alias(self, new_name, old_name):
        return self.s('alias', self.process(new_name), self.process(old_name))

    def on_var_alias(self, new_name, old_name):
        return self.s('alias', self.process(new_name), self.process(old_name))

    def on_undef(self, names):
        return self.s('undef', *self.process_many(names))

    # ========================================================================
    # Parameters, blocks & lambdas
    # ========================================================================

    def on_params(self, req, opt, rest, post, kwargs, kwrest, block, *_rest):
        args: List[Node] = []

        args.extend(self.param(arg) for arg in req or [])
        args.extend(self.s('optarg', self.token_name(name), self.process(default), loc=token_position(name))
                    for name, default in opt or [])

        if rest is not None and rest is not False and not is_excessed_comma(rest):
            args.append(self.process(rest))

        args.extend(self.param(arg) for arg in post or [])

        for name, default in kwargs or []:
            if default is False or default is None:
                args.append(self.s('kwarg', self.token_name(name), loc=token_position(name)))
            else:
                args.append(self.s('kwoptarg', self.token_name(name), self.process(default),
                                   loc=token_position(name)))

        if kwrest:
            args.append(self.process(kwrest))
        if block:
            args.append(self.process(block))

        return self.s('args', *args)

    def param(self, arg: Concrete) -> Node:
        match arg[0]:
            case '@ident':
                return self.s('arg', self.token_name(arg), loc=token_position(arg))
            case 'mlhs_paren' | 'mlhs':
                return self.param_group(arg)
            case 'rest_param':
                return self.process(arg)

        raise UnsupportedConstruct(f"Unknown parameter type {arg[0]}", token_position(arg))

    def param_group(self, group: Concrete) -> Node:
        inner = group[1] if group[0] == 'mlhs_paren' else list(group[1:])
        if is_concrete_node(inner) and inner[0] in ('mlhs_paren', 'mlhs'):
            return self.param_group(inner)
        if is_concrete_node(inner):
            inner = [inner]
        return self.s('mlhs', *[self.param(arg) for arg in inner])

    def on_rest_param(self, name):
        if is_concrete_node(name) and name[0] == 'var_field':
            name = name[1]
        if name:
            return self.s('restarg', self.token_name(name), loc=token_position(name))
        return self.s('restarg')

    def on_kwrest_param(self, name):
        if name:
            return self.s('kwrestarg', self.token_name(name), loc=token_position(name))
        return self.s('kwrestarg')

    def on_blockarg(self, name):
        return self.s('blockarg', self.token_name(name), loc=token_position(name))

    def on_block_var(self, params, shadow):
        args = self.process(params)
        shadows = [self.s('shadowarg', self.token_name(arg), loc=token_position(arg)) for arg in shadow or []]
        return args.updated(children=[*args.children, *shadows])

    def block_args(self, params: Concrete) -> Node:
        args = self.process(params) or self.s('args')

        if (
            self.builder.emit_procarg0
            and len(args.children) == 1
            and args.children[0].type == 'arg'
            and not has_excessed_comma(params)
        ):
            return args.updated(children=[args.children[0].updated('procarg0')])
        return args

    def on_brace_block(self, params, stmts):
        return self.s('block', self.block_args(params), self.body(stmts))

    def on_do_block(self, params, bodystmt):
        return self.s('block', self.block_args(params), self.process(bodystmt))

    def on_method_add_block(self, call, block):
        call = self.process(call)
        block = self.process(block)
        return block.updated(children=[call, *block.children])

    def on_lambda(self, params, stmts):
        args = self.block_args(params)
        if is_concrete_node(stmts) and stmts[0] == 'bodystmt':
            body = self.process(stmts)
        else:
            body = self.body(stmts)

        if self.builder.emit_lambda:
            marker = self.s('lambda')
        else:
            marker = self.s('send', None, Symbol('lambda'))

        return self.s('block', marker, args, body)

    # ========================================================================
    # Calls & operators
    # ========================================================================

    def on_args_add_block(self, parts, block):
        args = self.call_args(parts)
        if block:
            args.append(self.s('block_pass', self.process(block)))
        return args

    def on_args_add_star(self, *fields):
        return self.call_args(['args_add_star', *fields])

    def on_arg_paren(self, inner):
        return self.call_args(inner)

    def on_method_add_arg(self, call, args):
        send = self.process(call)
        return send.updated(children=[*send.children, *self.call_args(args)])

    def on_call(self, recv, dot, mid):
        return self.s(self.send_type(dot), self.process(recv), self.token_name(mid), loc=token_position(mid))

    def on_field(self, recv, dot, mid):
        return self.s(self.send_type(dot), self.process(recv), self.token_name(mid), loc=token_position(mid))

    def on_command(self, mid, args):
        return self.s('send', None, self.token_name(mid), *self.call_args(args), loc=token_position(mid))

    def on_command_call(self, recv, dot, mid, args=None):
        return self.s(self.send_type(dot), self.process(recv), self.token_name(mid), *self.call_args(args),
                      loc=token_position(mid))

    def index(self, recv: Concrete, args: Concrete) -> Node:
        recv = self.process(recv)
        args = self.call_args(args)
        if self.builder.emit_index:
            return self.s('index', recv, *args)
        return self.s('send', recv, Symbol('[]'), *args)

    def on_aref(self, recv, args):
        return self.index(recv, args)

    def on_aref_field(self, recv, args):
        return self.index(recv, args)

    def on_binary(self, lhs, op, rhs):
        lhs = self.process(lhs)
        rhs = self.process(rhs)

        match op:
            case 'and' | '&&':
                return self.s('and', lhs, rhs)
            case 'or' | '||':
                return self.s('or', lhs, rhs)

        return self.s('send', lhs, Symbol(op), rhs)

    def on_unary(self, op, operand):
        value = self.process(operand)

        match op:
            case '-@' | '+@' | '~':
                foldable = ('int',) if op == '~' else NUMERIC_TYPES
                if value is not None and value.type in foldable:
                    number = value.children[0]
                    folded = -number if op == '-@' else (~number if op == '~' else +number)
                    return value.updated(children=[folded])
            case 'not':
                return self.s('send', value if value is not None else self.s('begin'), Symbol('!'))

        return self.s('send', value, Symbol(op))

    def on_super(self, args):
        return self.s('super', *self.call_args(args))

    def on_zsuper(self, *_fields):
        return self.s('zsuper')

    def on_yield(self, args):
        if is_concrete_node(args) and args[0] == 'paren':
            args = args[1]
        return self.s('yield', *self.call_args(args))

    def on_yield0(self):
        return self.s('yield')

    def on_return(self, args):
        return self.s('return', *self.call_args(args))

    def on_return0(self):
        return self.s('return')

    def on_break(self, args):
        return self.s('break', *self.call_args(args))

    def on_next(self, args):
        return self.s('next', *self.call_args(args))

    def on_redo(self):
        return self.s('redo')

    def on_retry(self):
        return self.s('retry')

    # ========================================================================
    # Control flow
    # ========================================================================

    def on_if(self, cond, stmts, else_branch):
        return self.s('if', self.process(cond), self.body(stmts), self.process(else_branch))

    def on_elsif(self, cond, stmts, else_branch):
        return self.on_if(cond, stmts, else_branch)

    def on_unless(self, cond, stmts, else_branch):
        return self.s('if', self.process(cond), self.process(else_branch), self.body(stmts))

    def on_else(self, stmts):
        return self.body(stmts)

    def on_if_mod(self, cond, stmt):
        return self.s('if', self.process(cond), self.process(stmt), None)

    def on_unless_mod(self, cond, stmt):
        return self.s('if', self.process(cond), None, self.process(stmt))

    def on_ifop(self, cond, then_branch, else_branch):
        return self.s('if', self.process(cond), self.process(then_branch), self.process(else_branch))

    def on_while(self, cond, stmts):
        return self.s('while', self.process(cond), self.body(stmts))

    def on_until(self, cond, stmts):
        return self.s('until', self.process(cond), self.body(stmts))

    def loop_modifier(self, loop: str, cond: Concrete, stmt: Concrete) -> Node:
        # only `begin ... end while cond` runs the body before the first check
        if is_concrete_node(stmt) and stmt[0] == 'begin':
            loop += '_post'
        return self.s(loop, self.process(cond), self.process(stmt))

    def on_while_mod(self, cond, stmt):
        return self.loop_modifier('while', cond, stmt)

    def on_until_mod(self, cond, stmt):
        return self.loop_modifier('until', cond, stmt)

    def on_for(self, var, iterable, stmts):
        if is_concrete_list(var) or var[0] in ('mlhs', 'mlhs_paren', 'mlhs_add_star', 'mlhs_add_post'):
            target = self.s('mlhs', *self.mlhs_targets(var, unwrap=True))
        else:
            target = self.process(var)
        return self.s('for', self.reader_to_writer(target), self.process(iterable), self.body(stmts))

    def on_case(self, subject, clauses):
        whens: List[Node] = []
        else_body = None
        clause = clauses

        while clause is not None:
            match clause[0]:
                case 'when':
                    _, conds, stmts, *rest = clause
                    whens.append(self.s('when', *self.call_args(conds), self.body(stmts)))
                    clause = rest[0] if rest else None
                case 'else':
                    else_body = self.process(clause)
                    clause = None
                case _:
                    raise UnsupportedConstruct(f"Unsupported case clause {clause[0]}")

        if not whens:
            raise UnsupportedConstruct("case without when clauses")

        return self.s('case', self.process(subject), *whens, else_body)

    # ========================================================================
    # Exception handling
    # ========================================================================

    def else_statements(self, else_branch: Concrete) -> List[Node]:
        if is_concrete_node(else_branch) and else_branch[0] == 'else':
            return self.statements(else_branch[1])
        return self.statements(else_branch)

    def on_bodystmt(self, stmts, rescue, else_branch, ensure):
        statements = self.statements(stmts)
        body = self.to_single_node(statements)
        if not rescue and not else_branch and not ensure:
            return body

        if rescue:
            else_body = self.to_single_node(self.else_statements(else_branch)) if else_branch else None
            result = self.s('rescue', body, *self.rescue_clauses(rescue), else_body)
        elif else_branch:
            result = self.s('begin', *statements, *self.else_statements(else_branch))
        else:
            result = body

        if ensure:
            ensure_body = self.process(ensure)
            result = self.s('ensure', *self.flatten_sequence(result), *self.flatten_sequence(ensure_body))

        return result

    def rescue_clauses(self, rescue: Concrete) -> List[Node]:
        handlers: List[Node] = []
        clause = rescue

        while clause:
            if clause[0] != 'rescue':
                raise UnsupportedConstruct(f"Unsupported rescue clause {clause[0]}")

            _, classes, var, stmts, *rest = clause
            target = self.reader_to_writer(self.process(var)) if var else None
            handlers.append(self.s('resbody', self.exception_list(classes), target, self.body(stmts)))
            clause = rest[0] if rest else None

        return handlers

    def exception_list(self, classes: Concrete) -> Optional[Node]:
        if classes is None or classes is False:
            return None
        if is_concrete_list(classes):
            return self.s('array', *self.process_many(classes))

        node = self.process(classes)
        if node.type == 'array':
            return node
        return self.s('array', node)

    def on_ensure(self, stmts):
        return self.body(stmts)

    def on_rescue_mod(self, expr, handler):
        return self.s('rescue', self.process(expr), self.s('resbody', None, None, self.process(handler)), None)

    def on_begin(self, bodystmt):
        if is_concrete_node(bodystmt) and bodystmt[0] == 'bodystmt':
            _, stmts, rescue, else_branch, ensure = bodystmt
            if not rescue and not ensure:
                statements = self.statements(stmts)
                if else_branch:
                    statements += self.else_statements(else_branch)
                return self.s('kwbegin', *statements)

        body = self.process(bodystmt)
        if body is None:
            return self.s('kwbegin')
        return self.s('kwbegin', body)


def has_excessed_comma(params: Concrete) -> bool:
    """Look through block_var/paren wrappers for a `|a,|` style trailing comma."""
    while is_concrete_node(params) and params[0] in ('block_var', 'paren'):
        params = params[1]
    return is_concrete_node(params) and params[0] == 'params' and len(params) > 3 and is_excessed_comma(params[3])


def parse_int(text: str) -> int:
    """Ruby integer literal: underscores, 0x/0b/0o/0d prefixes and leading-zero octal."""
    digits = text.replace('_', '').lower()

    if digits.startswith(('0x', '0b', '0o')):
        return int(digits, 0)
    if digits.startswith('0d'):
        return int(digits[2:], 10)
    if len(digits) > 1 and digits.startswith('0'):
        return int(digits[1:], 8)
    return int(digits, 10)


def parse_rational(text: str) -> Fraction:
    digits = text.replace('_', '')
    if '.' in digits:
        return Fraction(digits)
    return Fraction(parse_int(digits))


Rewriter.RULES = collect_rules(Rewriter)
